"""
Prompt templates for the extraction model.

Each prompt asks for JSON only; the matching response shape lives in
finextract.engine.stages.
"""

DETECT_PROMPT = """
You are a strict document classifier.
Check if the image contains a financial statement table (Income Statement / P&L).

A valid table MUST have:
- Column headers (Year/Quarter)
- Row labels (Revenue/Expenses)
- Numeric values

Return JSON:
{
  "hasTable": boolean,
  "tableType": "income_statement" | "balance_sheet" | "other" | "unknown",
  "confidence": "high" | "medium" | "low"
}
"""

STRUCTURE_PROMPT = """
You are a data extraction engine.
Extract the table structure precisely.

CRITICAL RULES:
- Extract strict Rows and Columns.
- values array length MUST match columns length.
- Preserve exact text for values (e.g. "1,234", "(50)").
- Do NOT infer missing numbers.

Return JSON:
{
  "columns": [{ "index": number, "label": string }],
  "rows": [{ "index": number, "lineItem": string, "values": string[] }]
}
"""

CLASSIFY_PROMPT = """
You are a financial analyst.
Classify the structure provided in the image context.

1. Columns: Identify if they are Years (FY24), Quarters (Q1), or specific dates. Normalize year to "YYYY".
2. Rows: Categorize into Revenue, Expenses, Profit, or Other.

Return JSON:
{
  "columns": [{ "index": number, "type": "year" | "quarter" | "unknown", "year": "YYYY" }],
  "rows": [{ "index": number, "category": "Revenue" | "Expenses" | "Profit" | "Other" }]
}
"""

CLASSIFY_GRID_PROMPT = """
You are a financial analyst.
Below is a table reconstructed from the text layer of page 1. Row numbers and
column numbers are the indices you must use. The page images are attached for
visual context only; do NOT transcribe any numbers.

{grid}

1. Columns: for every column index, say whether it holds Years (FY24, 2024,
   31/03/2024), Quarters (Q1), or something else ("unknown"). For year
   columns, normalize the year to "YYYY".
2. Rows: for every row index that is a line item, categorize it into
   Revenue, Expenses, Profit, or Other. Skip header and blank rows.

Return JSON:
{{
  "columns": [{{ "index": number, "type": "year" | "quarter" | "unknown", "year": "YYYY" }}],
  "rows": [{{ "index": number, "category": "Revenue" | "Expenses" | "Profit" | "Other" }}]
}}
"""

DIRECT_PROMPT = """
You are an expert financial analyst. Your job is to extract the 'Income Statement' or 'Statement of Profit and Loss' from these images.

**Instructions:**
1. Identify the table headers to find all Fiscal Years (e.g., FY25, FY24, 2024, 2023).
2. For every years column found, extract the value for each line item row.
3. Structure the output strictly according to this JSON schema:
   - records: Array of objects with { category: string, subCategory: string, lineItem: string, year: string, value: number, unit: string, confidence: "High" | "Medium" | "Low", sourceSnippet: string }
   - yearsDetected: Array of strings finding all unique years (e.g., ["FY25", "FY24"])
   - notes: string (optional)

**Rules:**
- If a value is missing or '-', omit the record.
- Normalize numbers: If the header says "in Crores" and value is "5.5", keep it as 5.5 but set unit="Crores".
- If the image is blurry, set confidence="Low".
- sourceSnippet MUST quote the row label and the value exactly as printed (e.g. "Revenue from operations: 1,234.56").
- Do NOT hallucinate data. If you can't read it, skip it.
- Group items logically under 'Revenue', 'Expenses', 'Profit', etc.
"""
