"""
QR payload classification.

A decoded QR code is one of: a short event entry code, a mailto: or tel:
link, a vCard, a landing-page URL, or free text. Each kind is turned into
a QRClassification; only entry codes come back without a contact record.
"""

import json
import logging
import re
import time
from typing import Any, Callable, Dict, Iterable, List, Optional, Tuple
from urllib.parse import parse_qs, unquote

import requests
from bs4 import BeautifulSoup

from .errors import InvalidInputError
from .merger import merge
from .normalizer import normalize
from .schema import ContactRecord, ExtractionMethod, QRClassification, QRKind
from .scoring import confidence_score, lead_rating

logger = logging.getLogger(__name__)

ENTRY_CODE_PATTERN = re.compile(r"^[A-Za-z0-9_-]{3,30}$")
URL_PATTERN = re.compile(r"^https?://", re.IGNORECASE)
VCARD_PATTERN = re.compile(r"BEGIN:VCARD.*END:VCARD", re.IGNORECASE | re.DOTALL)

TEXT_EMAIL_PATTERN = re.compile(r"[A-Za-z0-9._%+-]+@[A-Za-z0-9.-]+\.[A-Za-z]{2,}")
TEXT_PHONE_PATTERN = re.compile(r"\+?\d[\d \t().-]{5,}\d")


def is_entry_code(text: str) -> bool:
    """Short alphanumeric access code: 3-30 of [A-Za-z0-9_-], no '.', '@' or '/'."""
    return bool(ENTRY_CODE_PATTERN.match(text))


def split_full_name(full_name: str) -> Tuple[str, str]:
    parts = full_name.split()
    if not parts:
        return "", ""
    return parts[0], " ".join(parts[1:])


# ---------------------------------------------------------------------------
# Unique codes
# ---------------------------------------------------------------------------

UNIQUE_CODE_KEY_PATTERN = re.compile(
    r"(?:uniquecode|unique_code|entrycode|entry_code|uniqueid|unique_id|code)\s*[=:]\s*"
    r"([A-Za-z0-9]{9,15})(?![A-Za-z0-9])",
    re.IGNORECASE,
)
UNIQUE_CODE_PATTERN = re.compile(r"\b[A-Za-z0-9]{9,15}\b")


def extract_unique_code(text: str) -> Optional[str]:
    """
    Find a 9-15 character event code inside a QR payload.

    A labelled code ("UniqueCode=AB12CD34EF", "code: ...") wins. Otherwise
    the first standalone token mixing letters and digits is taken, skipping
    phone-like tokens (more than 10 digits) and tokens next to an email
    address or URL.

    Args:
        text: vCard NOTE, raw vCard or free text

    Returns:
        The code, or None
    """
    if not text:
        return None

    match = UNIQUE_CODE_KEY_PATTERN.search(text)
    if match:
        return match.group(1)

    for match in UNIQUE_CODE_PATTERN.finditer(text):
        token = match.group(0)
        digits = sum(c.isdigit() for c in token)
        if digits == 0 or digits == len(token) or digits > 10:
            continue
        context = text[max(0, match.start() - 10):match.end() + 10].lower()
        if "@" in context or "http" in context or "www" in context:
            continue
        return token
    return None


# ---------------------------------------------------------------------------
# mailto: / tel:
# ---------------------------------------------------------------------------

def parse_mailto(text: str) -> Dict[str, Any]:
    """
    Parse a mailto: link.

    Args:
        text: e.g. "mailto:jane@acme.com?subject=Hello&body=Met%20at%20booth"

    Returns:
        Raw contact dict with the primary address and Subject/Body notes
    """
    target = text[len("mailto:"):]
    address_part, _, query = target.partition("?")
    # cc/bcc recipients are not the contact
    address = unquote(address_part.split(",")[0]).strip()

    params = {k.lower(): v for k, v in parse_qs(query).items()}
    notes = []
    if params.get("subject"):
        notes.append(f"Subject: {params['subject'][0]}")
    if params.get("body"):
        notes.append(f"Body: {params['body'][0]}")

    return {"emails": [address] if address else [], "notes": " | ".join(notes)}


def parse_tel(text: str) -> Dict[str, Any]:
    number = unquote(text[len("tel:"):]).strip()
    return {"phoneNumbers": [number] if number else []}


# ---------------------------------------------------------------------------
# vCard
# ---------------------------------------------------------------------------

def _unfold(lines: Iterable[str]) -> List[str]:
    unfolded: List[str] = []
    for line in lines:
        if line[:1] in (" ", "\t") and unfolded:
            unfolded[-1] += line[1:]
        elif line.strip():
            unfolded.append(line)
    return unfolded


def _unescape(value: str) -> str:
    return re.sub(
        r"\\([\\,;nN])",
        lambda m: "\n" if m.group(1) in "nN" else m.group(1),
        value,
    ).strip()


def _components(value: str) -> List[str]:
    """Split a structured value (N, ORG, ADR) on unescaped semicolons."""
    return [_unescape(part) for part in re.split(r"(?<!\\);", value)]


def parse_vcard(text: str) -> Dict[str, Any]:
    """
    Parse a vCard 2.1/3.0/4.0 payload into a raw contact dict.

    Continuation lines are unfolded and \\, \\; \\n escapes are decoded.
    Property groups ("item1.EMAIL") and parameters ("TEL;TYPE=CELL") are
    ignored.

    Args:
        text: Payload containing BEGIN:VCARD ... END:VCARD

    Returns:
        Raw contact dict ready for normalize()
    """
    data: Dict[str, Any] = {"emails": [], "phoneNumbers": []}
    structured_name: Optional[Tuple[str, str]] = None

    for line in _unfold(text.splitlines()):
        if ":" not in line:
            continue
        head, value = line.split(":", 1)
        prop = head.split(";", 1)[0].split(".")[-1].strip().upper()

        if prop == "FN":
            data["firstName"], data["lastName"] = split_full_name(_unescape(value))
        elif prop == "N":
            parts = _components(value) + ["", ""]
            family, given = parts[0], parts[1]
            if family or given:
                structured_name = (given, family)
        elif prop == "ORG":
            data["company"] = _components(value)[0]
        elif prop == "TITLE":
            data["position"] = _unescape(value)
        elif prop == "EMAIL":
            data["emails"].append(_unescape(value))
        elif prop == "TEL":
            data["phoneNumbers"].append(_unescape(value).replace("tel:", ""))
        elif prop == "URL":
            data["website"] = _unescape(value)
        elif prop == "ADR":
            # PO box; extended; street; locality; region; postal code; country
            parts = _components(value) + [""] * 7
            data["address"] = parts[2]
            data["city"] = parts[3]
            data["zipcode"] = parts[5]
            data["country"] = parts[6]
        elif prop == "NOTE":
            data["notes"] = _unescape(value)

    if structured_name:
        data["firstName"], data["lastName"] = structured_name
    return data


# ---------------------------------------------------------------------------
# Plain text
# ---------------------------------------------------------------------------

def parse_plaintext(text: str) -> Dict[str, Any]:
    """
    Heuristic extraction from free text: first email, first phone and a
    first line that looks like a name.
    """
    data: Dict[str, Any] = {}

    email = TEXT_EMAIL_PATTERN.search(text)
    if email:
        data["emails"] = [email.group(0)]

    phone = TEXT_PHONE_PATTERN.search(text)
    if phone:
        data["phoneNumbers"] = [phone.group(0)]

    lines = [line.strip() for line in text.splitlines() if line.strip()]
    if lines:
        first_line = lines[0]
        if len(first_line) < 50 and "@" not in first_line and not re.search(r"\d{3}", first_line):
            data["firstName"], data["lastName"] = split_full_name(first_line)

    return data


NOT_A_COMPANY_PATTERN = re.compile(
    r"director|manager|ceo|cto|cfo|engineer|developer|designer|download|phone|email",
    re.IGNORECASE,
)
POSITION_KEYWORDS = (
    "manager", "director", "engineer", "developer", "designer", "analyst",
    "specialist", "coordinator", "officer", "executive", "president",
    "vice", "assistant", "associate", "senior", "junior", "lead",
    "head", "chief", "ceo", "cto", "cfo", "coo", "consultant",
)


def is_valid_company(text: str) -> bool:
    if not text or not 2 <= len(text) <= 100:
        return False
    if "@" in text or re.match(r"^\+?\d", text):
        return False
    return not NOT_A_COMPANY_PATTERN.search(text)


def is_valid_position(text: str) -> bool:
    if not text or not 2 <= len(text) <= 100:
        return False
    lowered = text.lower()
    return any(keyword in lowered for keyword in POSITION_KEYWORDS)


def parse_page_text(text: str) -> Dict[str, Any]:
    """Plain-text heuristics plus company (line 2) and position (line 3)."""
    data = parse_plaintext(text)
    lines = [line.strip() for line in text.splitlines() if line.strip()]
    if len(lines) > 1 and is_valid_company(lines[1]):
        data["company"] = lines[1]
    if len(lines) > 2 and is_valid_position(lines[2]):
        data["position"] = lines[2]
    return data


# ---------------------------------------------------------------------------
# Landing pages
# ---------------------------------------------------------------------------

# Lower-cased JSON keys a contact endpoint may use -> wire field
JSON_FIELD_MAP = {
    "firstname": "firstName",
    "first_name": "firstName",
    "given_name": "firstName",
    "lastname": "lastName",
    "last_name": "lastName",
    "surname": "lastName",
    "org": "company",
    "organization": "company",
    "company": "company",
    "job_title": "position",
    "title": "position",
    "position": "position",
    "email": "emails",
    "mail": "emails",
    "phone": "phoneNumbers",
    "tel": "phoneNumbers",
    "mobile": "phoneNumbers",
    "website": "website",
    "url": "website",
    "address": "address",
    "street": "address",
    "city": "city",
    "locality": "city",
    "zipcode": "zipcode",
    "postal_code": "zipcode",
    "country": "country",
    "country_name": "country",
    "notes": "notes",
    "note": "notes",
}

class LandingPageScraper:
    """
    Fetches a QR landing page and pulls contact details out of it.

    JSON responses are mapped key by key. For HTML the sources are
    schema.org Person JSON-LD and mailto:/tel: links; when those yield no
    name, email or phone, the visible page text is read heuristically.
    """

    USER_AGENT = "Mozilla/5.0 (compatible; CardLeadScanner/1.0)"

    def __init__(
        self,
        timeout: float = 15,
        retry_attempts: int = 3,
        backoff_base: float = 1.0,
        sleep: Callable[[float], None] = time.sleep
    ):
        self.timeout = timeout
        self.retry_attempts = retry_attempts
        self.backoff_base = backoff_base
        self._sleep = sleep

    def fetch(self, url: str) -> Optional[requests.Response]:
        """
        GET a page with exponential backoff (1s, 2s, 4s ...).

        Returns:
            The response, or None after the last failed attempt
        """
        for attempt in range(self.retry_attempts):
            try:
                response = requests.get(
                    url,
                    headers={
                        "User-Agent": self.USER_AGENT,
                        "Accept": "text/html,application/xhtml+xml,application/json,*/*;q=0.8",
                    },
                    timeout=self.timeout,
                )
                response.raise_for_status()
                return response
            except requests.exceptions.RequestException as e:
                logger.warning(f"Landing page fetch failed ({attempt + 1}/{self.retry_attempts}): {e}")
                if attempt < self.retry_attempts - 1:
                    self._sleep(self.backoff_base * (2 ** attempt))

        logger.error(f"Giving up on landing page after {self.retry_attempts} attempts: {url}")
        return None

    def scrape(self, url: str) -> Dict[str, Any]:
        """Fetch and parse a landing page; returns {} when nothing is found."""
        response = self.fetch(url)
        if response is None:
            return {}

        content_type = response.headers.get("Content-Type", "").lower()
        if "json" in content_type:
            try:
                payload = response.json()
            except ValueError:
                logger.warning(f"Landing page claimed JSON but did not parse: {url}")
            else:
                if isinstance(payload, dict):
                    return self.parse_json(payload)

        if not response.text:
            return {}
        return self.parse(response.text)

    @staticmethod
    def parse_json(payload: Dict[str, Any]) -> Dict[str, Any]:
        """Map a JSON contact object through JSON_FIELD_MAP."""
        data: Dict[str, Any] = {}
        for key, value in payload.items():
            wire_name = JSON_FIELD_MAP.get(str(key).lower())
            if not wire_name or not value or isinstance(value, (dict, list)):
                continue
            if wire_name in ("emails", "phoneNumbers"):
                data.setdefault(wire_name, []).append(str(value))
            elif not data.get(wire_name):
                data[wire_name] = str(value)
        return data

    def parse(self, html: str) -> Dict[str, Any]:
        soup = BeautifulSoup(html, "html.parser")
        data = self._person_from_json_ld(soup)

        emails = list(data.get("emails", []))
        phones = list(data.get("phoneNumbers", []))
        for link in soup.find_all("a", href=True):
            href = link["href"].strip()
            if href.lower().startswith("mailto:"):
                emails.extend(parse_mailto("mailto:" + href[7:])["emails"])
            elif href.lower().startswith("tel:"):
                phones.extend(parse_tel("tel:" + href[4:])["phoneNumbers"])

        if emails:
            data["emails"] = emails
        if phones:
            data["phoneNumbers"] = phones

        if not (data.get("firstName") or emails or phones):
            for tag in soup(["script", "style", "noscript", "head"]):
                tag.decompose()
            fallback = parse_page_text(soup.get_text("\n"))
            for key, value in fallback.items():
                if value and not data.get(key):
                    data[key] = value
        return data

    @staticmethod
    def _json_ld_entities(soup: BeautifulSoup) -> List[Dict[str, Any]]:
        entities = []
        for script in soup.find_all("script", attrs={"type": "application/ld+json"}):
            try:
                payload = json.loads(script.string or "")
            except json.JSONDecodeError:
                continue
            items = payload if isinstance(payload, list) else [payload]
            for item in items:
                if not isinstance(item, dict):
                    continue
                graph = item.get("@graph")
                if isinstance(graph, list):
                    entities.extend(e for e in graph if isinstance(e, dict))
                else:
                    entities.append(item)
        return entities

    def _person_from_json_ld(self, soup: BeautifulSoup) -> Dict[str, Any]:
        for entity in self._json_ld_entities(soup):
            if entity.get("@type") != "Person" and entity.get("type") != "Person":
                continue

            data: Dict[str, Any] = {}
            if isinstance(entity.get("name"), str):
                data["firstName"], data["lastName"] = split_full_name(entity["name"])
            if entity.get("givenName"):
                data["firstName"] = entity["givenName"]
            if entity.get("familyName"):
                data["lastName"] = entity["familyName"]
            if entity.get("jobTitle"):
                data["position"] = entity["jobTitle"]

            org = entity.get("worksFor") or entity.get("organization")
            if isinstance(org, dict) and org.get("name"):
                data["company"] = org["name"]

            if entity.get("email"):
                data["emails"] = [str(entity["email"]).replace("mailto:", "")]
            if entity.get("telephone"):
                data["phoneNumbers"] = [str(entity["telephone"])]

            address = entity.get("address")
            if isinstance(address, dict):
                data["address"] = address.get("streetAddress", "")
                data["city"] = address.get("addressLocality", "")
                data["zipcode"] = address.get("postalCode", "")
                country = address.get("addressCountry", "")
                data["country"] = country.get("name", "") if isinstance(country, dict) else country
            return data
        return {}


# ---------------------------------------------------------------------------
# Classifier
# ---------------------------------------------------------------------------

class QRClassifier:
    """
    Classifies decoded QR text and extracts what each kind carries.

    Args:
        router: Optional ExtractionRouter used for free-text payloads
        scraper: Optional LandingPageScraper used for URL payloads
    """

    def __init__(self, router=None, scraper: Optional[LandingPageScraper] = None):
        self.router = router
        self.scraper = scraper

    def classify(self, text: Any) -> QRClassification:
        """
        Classify a QR payload.

        Args:
            text: Decoded QR string

        Returns:
            QRClassification for the first matching kind

        Raises:
            InvalidInputError: If text is empty or not a string
        """
        if not isinstance(text, str) or not text.strip():
            raise InvalidInputError("QR code data is required")

        raw = text.strip()
        lowered = raw.lower()

        if is_entry_code(raw):
            logger.info("QR classified as entry code")
            return QRClassification(
                kind=QRKind.ENTRY_CODE,
                raw_data=raw,
                confidence=1.0,
                entry_code=raw,
                rating=1,
            )

        if lowered.startswith("mailto:"):
            return self._contact(QRKind.MAILTO, raw, normalize(parse_mailto(raw)))

        if lowered.startswith("tel:"):
            return self._contact(QRKind.TEL, raw, normalize(parse_tel(raw)))

        if VCARD_PATTERN.search(raw):
            data = parse_vcard(raw)
            code = extract_unique_code(data.get("notes", "")) or extract_unique_code(raw)
            return self._contact(QRKind.VCARD, raw, normalize(data), unique_code=code)

        if URL_PATTERN.match(raw):
            return self._contact(QRKind.URL, raw, self._from_url(raw))

        return self._contact(
            QRKind.PLAINTEXT,
            raw,
            self._from_plaintext(raw),
            unique_code=extract_unique_code(raw),
        )

    def _from_url(self, url: str) -> ContactRecord:
        record = normalize({"website": url})
        if self.scraper is None:
            return record

        scraped = normalize(self.scraper.scrape(url))
        merged = merge(scraped, record)
        merged.website = record.website
        return merged

    def _from_plaintext(self, text: str) -> ContactRecord:
        if self.router is not None:
            outcome = self.router.run(text, ExtractionMethod.TEXT)
            if outcome.ok:
                return outcome.record
            logger.info(f"Text extraction failed for QR payload, using heuristics: {outcome.error}")
        return normalize(parse_plaintext(text))

    @staticmethod
    def _contact(
        kind: QRKind,
        raw: str,
        record: ContactRecord,
        unique_code: Optional[str] = None
    ) -> QRClassification:
        logger.info(f"QR classified as {kind.value} ({len(record.populated_fields())} fields)")
        return QRClassification(
            kind=kind,
            raw_data=raw,
            confidence=confidence_score(record),
            record=record,
            rating=lead_rating(record),
            unique_code=unique_code,
        )
