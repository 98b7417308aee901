# ============================================================================
# src/lab_intake/llm/prompts.py
# ============================================================================
"""
Extraction prompt sent with every lab report.

The JSON shape requested here is the one validate_extraction() accepts.
"""

EXTRACTION_PROMPT = """You are a medical data extraction assistant. Analyze this lab result document and extract the following information in JSON format:

{
  "patient": {
    "patientNumber": "Patient ID or medical record number",
    "firstName": "Patient's first name",
    "lastName": "Patient's last name",
    "dateOfBirth": "YYYY-MM-DD format (optional)"
  },
  "testDate": "Date the test was performed (YYYY-MM-DD)",
  "testType": "Type of lab test (e.g., Complete Blood Count, Lipid Panel)",
  "testValues": [
    {
      "testCode": "Standard lab test code (e.g., WBC, RBC, GLU)",
      "value": numeric value,
      "isAbnormal": true/false based on reference ranges if shown
    }
  ]
}

RULES:
- Extract ALL visible test values, one entry per row
- "value" must be a plain number: no units, no ranges, no flags
- If reference ranges are shown, mark values outside the normal range as abnormal
- Do not invent values; omit rows whose result is not numeric
- If the document has several pages, combine them into one result

Return ONLY valid JSON, no additional text."""
