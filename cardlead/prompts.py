"""
Extraction prompts sent to the recognition providers.

The prompt text is part of the provider contract, not pipeline logic.
Bump PROMPT_VERSION whenever the wording or the JSON shape changes.
"""

PROMPT_VERSION = "2025.2"

_JSON_SHAPE = """{
  "firstName": "Rajesh",
  "lastName": "Kumar",
  "company": "Machinery Trading Company",
  "position": "Owner",
  "emails": ["rajesh@example.com"],
  "phoneNumbers": ["+919876543210"],
  "website": "https://example.com",
  "address": "Shop No. 45, MG Road",
  "city": "Mumbai",
  "zipcode": "400001",
  "country": "India"
}"""

VISION_PROMPT = f"""You extract structured contact information from business card images.
Cards may be printed in any language (English, Hindi, Chinese, Arabic, Japanese, ...).

Instructions:
1. Read the whole card and extract ALL contact information.
2. ALWAYS translate non-English text to English (e.g. "मशीनरी स्टोर" -> "Machinery Store").
3. Clean up the text: no stray spaces, artifacts or decorative symbols.
4. Phone numbers: keep the country code (+91, +1, ...) and digits only.
5. Extract EVERY email address and EVERY phone number on the card.
6. Missing fields are "" for strings and [] for arrays.
7. Output ONLY valid JSON: no markdown, no commentary.

Required JSON format:
{_JSON_SHAPE}

"emails" and "phoneNumbers" must always be arrays of strings.
"""

TEXT_PROMPT = f"""Parse this OCR text from a business card and extract ALL contact information.
The text may come from BOTH sides of the card: merge everything into ONE contact.

Instructions:
1. Find the person's full name (usually the most prominent text). Do not leave
   firstName/lastName empty if a name is present.
2. Find the job title (Owner, Proprietor, Director, Manager, ...).
3. Find the company or business name.
4. Find ALL phone numbers and ALL email addresses.
5. Find website, address, city, zipcode and country. "Pin Code", "Postal Code"
   and "ZIP" all mean zipcode.
6. ALWAYS translate non-English text (Hindi, Tamil, Telugu, Bengali, Marathi,
   Kannada, Malayalam, Gujarati, Punjabi, Urdu, Chinese, Arabic, ...) to English,
   e.g. "राजेश कुमार" -> "Rajesh Kumar", "प्रबंधक" -> "Manager".
7. Phone numbers: remove spaces and dashes, keep or add the country code
   ("98765-43210" on an Indian card -> "+919876543210").
8. Output ONLY valid JSON: no markdown, no commentary.

Required JSON format:
{_JSON_SHAPE}

OCR text to parse:
"""


def build_prompt(mode: str) -> str:
    """Return the prompt for "vision" or "text" extraction."""
    return VISION_PROMPT if mode == "vision" else TEXT_PROMPT
