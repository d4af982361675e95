"""
Shared building blocks for portal notification parsers.

Every vendor parser is a table of labelled extraction rules evaluated over the
trimmed, non-empty lines of the email body, followed by body-wide regex
fallbacks. Parsers never raise: `None` is the only failure signal.
"""
from __future__ import annotations

import logging
import re
from abc import ABC, abstractmethod
from dataclasses import asdict, dataclass, field
from typing import Any, Callable, Dict, Iterable, List, Optional, Pattern, Sequence, Tuple

logger = logging.getLogger("leadmail.parsers")

DEFAULT_FIRST_NAME = "Sin nombre"
DEFAULT_LAST_NAME = "Sin apellido"

EMAIL_RE = re.compile(r"[A-Za-z0-9._%+-]+@[A-Za-z0-9.-]+\.[A-Za-z]{2,}")

# A phone value on a labelled line: optional +, then digits with separators.
PHONE_VALUE_RE = re.compile(r"\+?\(?\d[\d\s().\-]{6,}\d")

# Body-wide fallbacks, tried in order: country-code prefixed, then a bare
# ten-digit run.
PHONE_FALLBACK_PATTERNS: Tuple[Pattern[str], ...] = (
    re.compile(r"\+\d{1,3}[\s.\-]?(?:\(?\d{1,4}\)?[\s.\-]?){2,4}\d{2,4}"),
    re.compile(r"(?<![\d+])\(?\d{2,3}\)?[\s.\-]?\d{3,4}[\s.\-]?\d{4}(?!\d)"),
)

SYSTEM_ADDRESS_MARKERS = ("noreply", "no-reply", "notifier", "notifications", "mailer")

NAME_WORD = r"[^\W\d_](?:[^\W\d_]|['’\-])*"
NAME_PATTERN = rf"{NAME_WORD}(?:[ \t]+{NAME_WORD}){{0,5}}"

# Words that end a name captured from running text ("Juan Pérez sobre ...").
_NAME_STOPWORDS = {
    "sobre", "por", "para", "en", "acerca", "del", "con", "quiere", "desea",
    "consulta", "está", "esta", "ha", "te", "le", "envió", "envio", "about",
    "regarding", "for", "on", "is", "wants", "has", "interesado", "interesada",
}
_GREETINGS = {"hola", "buenas", "buenos", "dias", "días", "tardes", "saludos", "hi", "hello", "estimado", "estimada"}
# Skipped before the first name word ("consulta de la propiedad", "El cliente Roberto ...").
_LEADING_NON_NAMES = {
    "la", "el", "los", "las", "un", "una", "tu", "su", "mi", "nuestro", "nuestra",
    "the", "a", "this", "your", "contacto", "cliente", "clienta", "usuario", "usuaria",
    "prospecto", "sr", "sra", "señor", "señora", "propiedad", "departamento", "depto",
    "casa", "compra", "renta", "venta", "anuncio", "inmueble", "terreno", "oficina",
    "local", "portal", "property", "listing", "tokko", "broker", "easybroker", "nueva",
    "nuevo", "hay", "recibiste", "tienes",
}

_ACCENT_CLASSES = {
    "a": "[aá]", "e": "[eé]", "i": "[ií]", "o": "[oó]", "u": "[uúü]", "n": "[nñ]",
    "á": "[aá]", "é": "[eé]", "í": "[ií]", "ó": "[oó]", "ú": "[uúü]", "ñ": "[nñ]",
}


def accent_insensitive(phrase: str) -> str:
    """Regex source matching `phrase` with or without Spanish accents."""
    parts = []
    for char in phrase.lower():
        if char.isspace():
            if not parts or parts[-1] != r"\s+":
                parts.append(r"\s+")
        else:
            parts.append(_ACCENT_CLASSES.get(char, re.escape(char)))
    return "".join(parts)


def split_lines(text: str) -> List[str]:
    return [line.strip() for line in (text or "").splitlines() if line.strip()]


def digits_only(value: Optional[str]) -> str:
    return re.sub(r"\D", "", value or "")


def normalize_phone_digits(value: Optional[str]) -> Optional[str]:
    """Digits-only phone with the Mexican/NANP country code removed.

    "+52 998 123 4567" -> "9981234567"; anything under 7 digits is rejected.
    """
    digits = digits_only(value)
    if len(digits) == 13 and digits.startswith("521"):
        digits = digits[3:]
    elif len(digits) == 12 and digits.startswith("52"):
        digits = digits[2:]
    elif len(digits) == 11 and digits.startswith("1"):
        digits = digits[1:]
    return digits if len(digits) >= 7 else None


def clean_name(text: Optional[str], capitalized: bool = False) -> Optional[str]:
    """First plausible personal name in `text`, or None.

    Leading greetings, articles and listing nouns are skipped. With
    `capitalized`, used for names pulled out of running text, the first name
    word must start with an uppercase letter.
    """
    if not text:
        return None
    match = re.search(NAME_PATTERN, text)
    if not match:
        return None
    words: List[str] = []
    for word in match.group(0).split():
        folded = word.lower()
        if not words:
            if folded in _GREETINGS or folded in _LEADING_NON_NAMES:
                continue
            if capitalized and not word[0].isupper():
                return None
        if folded in _NAME_STOPWORDS:
            break
        words.append(word.strip("'’-"))
        if len(words) == 4:
            break
    words = [w for w in words if w]
    return " ".join(words) or None


def split_name(full_name: str) -> Tuple[str, str]:
    parts = full_name.split()
    if not parts:
        return "", ""
    return parts[0], " ".join(parts[1:])


def is_system_address(address: str, excluded_domains: Iterable[str] = ()) -> bool:
    lowered = address.lower()
    if any(marker in lowered for marker in SYSTEM_ADDRESS_MARKERS):
        return True
    domain = lowered.rsplit("@", 1)[-1]
    return any(domain == d or domain.endswith("." + d) for d in excluded_domains)


def find_email_fallback(text: str, excluded_domains: Iterable[str] = ()) -> Optional[str]:
    """First address in the body that isn't the portal's own or an automated sender."""
    excluded = tuple(d.lower() for d in excluded_domains)
    for candidate in EMAIL_RE.findall(text or ""):
        if not is_system_address(candidate, excluded):
            return candidate
    return None


def find_phone_fallback(text: str) -> Optional[str]:
    for pattern in PHONE_FALLBACK_PATTERNS:
        for match in pattern.finditer(text or ""):
            phone = normalize_phone_digits(match.group(0))
            if phone and len(phone) >= 10:
                return phone
    return None


@dataclass
class ParsedLead:
    """Structured contact data extracted from one notification email."""

    first_name: str
    last_name: str
    source: str
    email: Optional[str] = None
    phone: Optional[str] = None
    message: Optional[str] = None
    property_interest: Optional[str] = None

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip()

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class LabelRule:
    """One field's labelled-line extraction rule.

    `labels` are matched at the start of a line (or anywhere when
    `anchored=False`), accent- and case-insensitively. The value is the
    remainder of that line, or the next line when the remainder is empty.
    With `value_pattern`, only the matching part of the candidate text is
    returned and lines without a match are skipped.
    """

    labels: Tuple[str, ...]
    value_pattern: Optional[Pattern[str]] = None
    anchored: bool = True
    allow_next_line: bool = True
    _regex: Pattern[str] = field(init=False, repr=False, compare=False)

    def __post_init__(self) -> None:
        alternatives = "|".join(
            accent_insensitive(label)
            for label in sorted(self.labels, key=len, reverse=True)
        )
        prefix = "^" if self.anchored else ""
        regex = re.compile(
            rf"{prefix}(?:{alternatives})(?![^\W\d_])\s*(?P<sep>[:\-–])?\s*(?P<value>.*)$",
            re.IGNORECASE,
        )
        object.__setattr__(self, "_regex", regex)

    def matches(self, line: str) -> bool:
        return self._regex.search(line) is not None

    def _pick(self, text: str) -> Optional[str]:
        text = text.strip()
        if not text:
            return None
        if self.value_pattern is None:
            return text
        match = self.value_pattern.search(text)
        return match.group(0).strip() if match else None

    def extract(
        self,
        lines: Sequence[str],
        is_label: Optional[Callable[[str], bool]] = None,
    ) -> Optional[str]:
        for index, line in enumerate(lines):
            match = self._regex.search(line)
            if not match:
                continue
            remainder = match.group("value").strip()
            if remainder:
                # "Mensaje enviado desde el portal" is prose, not a label.
                if self.value_pattern is None and not match.group("sep"):
                    continue
                value = self._pick(remainder)
                if value:
                    return value
                continue
            if self.allow_next_line and index + 1 < len(lines):
                following = lines[index + 1]
                if is_label is not None and is_label(following):
                    continue
                value = self._pick(following)
                if value:
                    return value
        return None


class ParserStrategy(ABC):
    """Turns one vendor's notification email into a ParsedLead."""

    provider: str = "other"
    source_label: str = "Email Import"

    def parse(self, body: str, subject: str = "") -> Optional[ParsedLead]:
        try:
            return self._parse(body or "", subject or "")
        except Exception:
            logger.exception("%s parser failed on message (subject=%r)", self.provider, subject)
            return None

    @abstractmethod
    def _parse(self, body: str, subject: str) -> Optional[ParsedLead]:
        raise NotImplementedError

    def _build(
        self,
        name: Optional[str],
        *,
        email: Optional[str] = None,
        phone: Optional[str] = None,
        message: Optional[str] = None,
        property_interest: Optional[str] = None,
    ) -> Optional[ParsedLead]:
        if not name:
            return None
        first_name, last_name = split_name(name)
        if not first_name and not last_name:
            return None
        return ParsedLead(
            first_name=first_name or DEFAULT_FIRST_NAME,
            last_name=last_name or DEFAULT_LAST_NAME,
            source=self.source_label,
            email=email or None,
            phone=phone or None,
            message=message or None,
            property_interest=property_interest or None,
        )


# Label vocabulary shared by the Spanish-language portals.
NAME_RULE = LabelRule(("nombre completo", "nombre", "name", "full name"))
EMAIL_RULE = LabelRule(
    ("correo electrónico", "correo", "e-mail", "email", "mail"),
    value_pattern=EMAIL_RE,
)
PHONE_RULE = LabelRule(
    ("teléfono", "telefono", "tel.", "tel", "móvil", "celular", "phone", "mobile", "whatsapp"),
    value_pattern=PHONE_VALUE_RE,
)
PROPERTY_RULE = LabelRule(("propiedades", "propiedad", "properties", "property", "inmueble"))
MESSAGE_RULE = LabelRule(("mensaje", "comentarios", "comentario", "message", "comment"))


class TemplateParser(ParserStrategy):
    """Line-oriented parser driven by per-vendor rule tables.

    Subclasses set the announcement patterns (each with an optional `name`
    group), the field rules, the portal's own mail domains and how the
    property label is derived from the subject.
    """

    announcement_patterns: Tuple[Pattern[str], ...] = ()
    name_rule: Optional[LabelRule] = NAME_RULE
    email_rule: LabelRule = EMAIL_RULE
    phone_rule: LabelRule = PHONE_RULE
    property_rules: Tuple[LabelRule, ...] = (PROPERTY_RULE,)
    message_rule: Optional[LabelRule] = MESSAGE_RULE
    excluded_domains: Tuple[str, ...] = ()
    subject_delimiter: str = " - "
    subject_prefixes: Tuple[Pattern[str], ...] = ()

    def _rules(self) -> List[LabelRule]:
        rules = [self.email_rule, self.phone_rule, *self.property_rules]
        if self.name_rule is not None:
            rules.append(self.name_rule)
        if self.message_rule is not None:
            rules.append(self.message_rule)
        return rules

    def _is_label(self, line: str) -> bool:
        return any(rule.matches(line) for rule in self._rules())

    def find_announced_name(self, lines: Sequence[str]) -> Optional[str]:
        for index, line in enumerate(lines):
            for pattern in self.announcement_patterns:
                match = pattern.search(line)
                if not match:
                    continue
                captured = match.groupdict().get("name")
                if captured:
                    name = clean_name(captured, capitalized=True)
                    if name:
                        return name
                    continue
                # Announcement ends the line; the name sits on the next one.
                if index + 1 < len(lines) and not self._is_label(lines[index + 1]):
                    name = clean_name(lines[index + 1], capitalized=True)
                    if name:
                        return name
        return None

    def find_name(self, lines: Sequence[str]) -> Optional[str]:
        name = self.find_announced_name(lines)
        if name:
            return name
        if self.name_rule is not None:
            return clean_name(self.name_rule.extract(lines, self._is_label))
        return None

    def property_from_subject(self, subject: str) -> Optional[str]:
        text = subject.strip()
        for prefix in self.subject_prefixes:
            text = prefix.sub("", text, count=1).strip()
        if self.subject_delimiter and self.subject_delimiter in text:
            text = text.split(self.subject_delimiter)[0].strip()
        text = text.strip(" :-–#")
        return text or None

    def _parse(self, body: str, subject: str) -> Optional[ParsedLead]:
        lines = split_lines(body)

        name = self.find_name(lines)
        if not name:
            return None

        email = self.email_rule.extract(lines, self._is_label)
        if not email:
            email = find_email_fallback(body, self.excluded_domains)

        phone = normalize_phone_digits(self.phone_rule.extract(lines, self._is_label))
        if not phone:
            phone = find_phone_fallback(body)

        property_interest = None
        for rule in self.property_rules:
            property_interest = rule.extract(lines, self._is_label)
            if property_interest:
                break
        if not property_interest and subject:
            property_interest = self.property_from_subject(subject)

        message = None
        if self.message_rule is not None:
            message = self.message_rule.extract(lines)

        return self._build(
            name,
            email=email,
            phone=phone,
            message=message,
            property_interest=property_interest,
        )
