"""
Normalization of the diagnosis webhook response.

The external analysis service does not return a stable shape. Depending on
how the workflow behind it is wired, the diagnosis arrives as
``[{"output": {...}}]``, ``[{"response": {"output": {...}}}]``,
``{"output": {...}}`` or as flat fields on the top-level object, and severity
comes either as a number or as free text. Everything here turns that text into
one ``AnalysisResult`` or raises a ``NormalizationError``.
"""
import json
import logging
import re
from typing import Any, Callable, Iterable, Optional, Tuple, Union

from pydantic import ValidationError

from drcrop.models.schemas import AnalysisResult

logger = logging.getLogger(__name__)

UNKNOWN_DISEASE = "Unknown Disease"
DEFAULT_ORGANIC = (
    "Apply organic treatments such as neem oil and remove affected leaves. "
    "Consult a local agricultural specialist for guidance."
)
DEFAULT_CHEMICAL = (
    "Consult a local agricultural specialist before applying chemical treatments."
)
BULLET_SEPARATOR = "\n• "

DIAGNOSIS_KEYS = ("Diagnosis", "diagnosis", "Disease", "disease", "Disease Name", "disease_name")
ORGANIC_KEYS = (
    "Organic Treatment",
    "organic_treatment",
    "OrganicTreatment",
    "Organic",
    "organic",
    "organic_diagnosis",
)
CHEMICAL_KEYS = (
    "Chemical Treatment",
    "chemical_treatment",
    "ChemicalTreatment",
    "Chemical",
    "chemical",
    "chemical_diagnosis",
)
SEVERITY_KEYS = ("Severity", "severity", "Severity Percentage", "severity_percentage", "severity_percent")
SEVERITY_LABEL_KEYS = ("Severity Level", "severity_level", "Severity Label", "severity_label")

DEFAULT_SEVERITY = ("Moderate", 50)

_CODE_FENCE = re.compile(r"^```[a-zA-Z]*\s*|\s*```$")
_EG_WITH_COMMA = re.compile(r"\(e\.g\.,\s*")
_EG = re.compile(r"\(e\.g\.\s*")
_PAREN_WITH = re.compile(r"\) with ")


class NormalizationError(Exception):
    """Base class for webhook responses that cannot become an AnalysisResult."""


class EmptyResponseError(NormalizationError):
    pass


class MalformedResponseError(NormalizationError):
    pass


class UnrecognizedSchemaError(NormalizationError):
    pass


class SchemaValidationError(NormalizationError):
    pass


# ---------------------------------------------------------------------------
# Payload location
# ---------------------------------------------------------------------------

def _first(payload: dict, keys: Iterable[str]) -> Any:
    for key in keys:
        value = payload.get(key)
        if value is not None:
            return value
    return None


def _has_recognized_field(payload: dict) -> bool:
    return any(
        _first(payload, keys) is not None
        for keys in (DIAGNOSIS_KEYS, ORGANIC_KEYS, CHEMICAL_KEYS)
    )


def _parse_embedded_json(text: str) -> Any:
    """Some workflows hand back ``output`` as a JSON string, often fenced."""
    stripped = _CODE_FENCE.sub("", text.strip())
    try:
        return json.loads(stripped)
    except (ValueError, RecursionError):
        return None


def _usable(value: Any) -> Optional[dict]:
    if isinstance(value, str):
        value = _parse_embedded_json(value)
    if isinstance(value, dict) and _has_recognized_field(value):
        return value
    return None


def _first_element(document: Any) -> Optional[dict]:
    if isinstance(document, list) and document and isinstance(document[0], dict):
        return document[0]
    return None


def _from_array_output(document: Any) -> Optional[dict]:
    item = _first_element(document)
    if item is None:
        return None
    return _usable(item.get("output"))


def _from_array_response_output(document: Any) -> Optional[dict]:
    item = _first_element(document)
    if item is None or not isinstance(item.get("response"), dict):
        return None
    return _usable(item["response"].get("output"))


def _from_object_output(document: Any) -> Optional[dict]:
    if not isinstance(document, dict):
        return None
    return _usable(document.get("output"))


def _from_flat_object(document: Any) -> Optional[dict]:
    if not isinstance(document, dict):
        return None
    return _usable(document)


# Tried in order; the first candidate returning a payload wins.
SHAPE_CANDIDATES: Tuple[Tuple[str, Callable[[Any], Optional[dict]]], ...] = (
    ("array.output", _from_array_output),
    ("array.response.output", _from_array_response_output),
    ("object.output", _from_object_output),
    ("object.flat", _from_flat_object),
)


def locate_payload(document: Any) -> dict:
    for name, candidate in SHAPE_CANDIDATES:
        payload = candidate(document)
        if payload is not None:
            logger.debug("Webhook response matched shape %s", name)
            return payload
    raise UnrecognizedSchemaError(
        "Response JSON does not contain a recognizable diagnosis, organic or chemical treatment field"
    )


# ---------------------------------------------------------------------------
# Field extraction
# ---------------------------------------------------------------------------

def clean_treatment_text(text: str) -> str:
    text = _EG_WITH_COMMA.sub("(for example: ", text)
    text = _EG.sub("(for example ", text)
    text = _PAREN_WITH.sub(") - ", text)
    return text.strip()


def _treatment(value: Any, default: str) -> str:
    if isinstance(value, str):
        cleaned = clean_treatment_text(value)
    elif isinstance(value, (list, tuple)):
        items = [clean_treatment_text(str(item)) for item in value if item is not None]
        cleaned = BULLET_SEPARATOR.join(item for item in items if item)
    else:
        cleaned = ""
    return cleaned or default


def _disease(value: Any) -> str:
    if value is None:
        return UNKNOWN_DISEASE
    text = str(value).strip()
    return text or UNKNOWN_DISEASE


def classify_severity_text(text: str) -> Tuple[str, int]:
    lowered = text.lower()
    if "mild" in lowered:
        return "Mild", 25
    if "severe" in lowered:
        return "Severe", 75
    return "Moderate", 50


def derive_severity(payload: dict) -> Tuple[str, Union[int, float]]:
    """Return ``(severity, severity_percent)`` from the single severity source.

    A numeric source is taken as the percent verbatim and does not decide the
    label; the label stays "Moderate" unless a separate textual severity
    level field is present.
    """
    value = _first(payload, SEVERITY_KEYS)

    if isinstance(value, bool) or value is None:
        return DEFAULT_SEVERITY

    if isinstance(value, (int, float)):
        percent = value
        if isinstance(value, float) and value.is_integer():
            percent = int(value)
        label_source = _first(payload, SEVERITY_LABEL_KEYS)
        if isinstance(label_source, str):
            label, _ = classify_severity_text(label_source)
        else:
            label = DEFAULT_SEVERITY[0]
        return label, percent

    if isinstance(value, str):
        return classify_severity_text(value)

    return DEFAULT_SEVERITY


def extract_result(payload: dict) -> dict:
    severity, severity_percent = derive_severity(payload)
    return {
        "disease": _disease(_first(payload, DIAGNOSIS_KEYS)),
        "severity": severity,
        "severity_percent": severity_percent,
        "organic_diagnosis": _treatment(_first(payload, ORGANIC_KEYS), DEFAULT_ORGANIC),
        "chemical_diagnosis": _treatment(_first(payload, CHEMICAL_KEYS), DEFAULT_CHEMICAL),
    }


# ---------------------------------------------------------------------------
# Public entry points
# ---------------------------------------------------------------------------

def normalize_response(raw: Union[str, bytes, None]) -> dict:
    """Parse the raw webhook body and map it onto the canonical fields."""
    if raw is None:
        raise EmptyResponseError("Analysis service returned an empty response")

    if isinstance(raw, bytes):
        try:
            raw = raw.decode("utf-8")
        except UnicodeDecodeError as exc:
            raise MalformedResponseError(f"Response is not valid UTF-8: {exc}") from exc

    if not raw.strip():
        raise EmptyResponseError("Analysis service returned an empty response")

    try:
        document = json.loads(raw)
    except (ValueError, RecursionError) as exc:
        raise MalformedResponseError(f"Response is not valid JSON: {exc}") from exc

    return extract_result(locate_payload(document))


def validate_result(candidate: dict) -> AnalysisResult:
    try:
        return AnalysisResult.model_validate(candidate)
    except ValidationError as exc:
        raise SchemaValidationError(f"Normalized result failed validation: {exc}") from exc


def parse_analysis_response(raw: Union[str, bytes, None]) -> AnalysisResult:
    """Normalize and validate in one step; the only result the app persists."""
    try:
        return validate_result(normalize_response(raw))
    except NormalizationError as exc:
        logger.warning("Could not normalize analysis response: %s", exc)
        raise
