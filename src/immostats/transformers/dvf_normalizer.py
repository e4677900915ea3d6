"""
DVF Record Normalizer

Converts raw DVF mutation records into canonical Property entities, applying
numeric parsing, outlier bounds and categorical mapping.
"""
import hashlib
import math
from collections import Counter
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from pydantic import ValidationError

from src.immostats.exceptions import NormalizationReject
from src.immostats.models.property import Property, PropertyType, TransactionType
from src.immostats.utils.regions import (
    department_from_postal_code,
    normalize_department,
    region_for_department,
)


class DVFNormalizer:
    """
    Maps DVF mutation records to Property entities.

    Records are dropped, never clamped, when price or surface fall outside
    the accepted transaction bounds. The same raw record always yields the
    same external_id so repeated ingestion upserts a single row.
    """

    MIN_PRICE = 10_000
    MAX_PRICE = 50_000_000
    MIN_SURFACE = 9
    MAX_SURFACE = 1_000

    # DVF type_local -> canonical property type
    PROPERTY_TYPE_MAP = {
        "APPARTEMENT": PropertyType.APARTMENT,
        "MAISON": PropertyType.HOUSE,
        "STUDIO": PropertyType.STUDIO,
        "LOFT": PropertyType.LOFT,
        "TERRAIN": PropertyType.LAND,
    }

    SOURCE_URL = "https://app.dvf.etalab.gouv.fr/"

    def __init__(self, source: str = "dvf"):
        """
        Initialize the normalizer.

        Args:
            source: Source name stamped on entities and used as external_id prefix
        """
        self.source = source
        self.rejected: Counter = Counter()

    def normalize(self, raw: Dict[str, Any], scraped_at: Optional[datetime] = None) -> Optional[Property]:
        """
        Convert one raw record into a Property.

        Args:
            raw: Raw DVF mutation record
            scraped_at: Ingestion timestamp (defaults to now)

        Returns:
            Property, or None when the record is rejected
        """
        try:
            return self.normalize_or_reject(raw, scraped_at=scraped_at)
        except NormalizationReject as e:
            self.rejected[e.reason] += 1
            return None

    def reset_counters(self) -> None:
        """Clear per-reason reject counters before a new run."""
        self.rejected.clear()

    def normalize_or_reject(self, raw: Dict[str, Any], scraped_at: Optional[datetime] = None) -> Property:
        """
        Convert one raw record into a Property or explain why not.

        Args:
            raw: Raw DVF mutation record
            scraped_at: Ingestion timestamp (defaults to now)

        Returns:
            Property entity

        Raises:
            NormalizationReject: With the rejection reason
        """
        raw_price = raw.get("valeur_fonciere")
        raw_surface = raw.get("surface_reelle_bati")

        if _is_blank(raw_price) and _is_blank(raw_surface):
            raise NormalizationReject("missing_price_and_surface")
        if _is_blank(raw_price):
            raise NormalizationReject("missing_price")
        if _is_blank(raw_surface):
            raise NormalizationReject("missing_surface")

        price = parse_number(raw_price)
        surface = parse_number(raw_surface)
        if price is None or surface is None:
            raise NormalizationReject("unparseable_number")

        if not self.MIN_PRICE <= price <= self.MAX_PRICE:
            raise NormalizationReject("price_out_of_range")
        if not self.MIN_SURFACE <= surface <= self.MAX_SURFACE:
            raise NormalizationReject("surface_out_of_range")

        type_local = _clean_str(raw.get("type_local"))
        property_type = self.map_property_type(type_local)

        city = _clean_str(raw.get("nom_commune") or raw.get("commune"))
        postal_code = _clean_postal_code(raw.get("code_postal"))
        department = normalize_department(raw.get("code_departement")) or department_from_postal_code(postal_code)

        rooms = _parse_int(raw.get("nombre_pieces_principales"))
        latitude, longitude = _parse_coordinates(raw.get("latitude"), raw.get("longitude"))

        try:
            return Property(
                external_id=self.build_external_id(raw),
                source=self.source,
                scraped_at=scraped_at or datetime.now(timezone.utc),
                published_at=_parse_date(raw.get("date_mutation")),
                price=price,
                surface=surface,
                rooms=rooms,
                bedrooms=None,
                property_type=property_type,
                transaction_type=TransactionType.SALE,
                city=city,
                postal_code=postal_code,
                department=department,
                region=region_for_department(department),
                latitude=latitude,
                longitude=longitude,
                title=_build_title(type_local, rooms, city),
                description=_build_description(city, postal_code, surface, rooms),
                url=self.SOURCE_URL,
                image_urls=[],
            )
        except ValidationError as e:
            raise NormalizationReject("invalid_entity") from e

    def map_property_type(self, type_local: Optional[str]) -> PropertyType:
        """Map a DVF type_local label to the canonical enum, defaulting to other."""
        if not type_local:
            return PropertyType.OTHER
        return self.PROPERTY_TYPE_MAP.get(type_local.strip().upper(), PropertyType.OTHER)

    def build_external_id(self, raw: Dict[str, Any]) -> str:
        """
        Derive a stable external identifier for a raw record.

        Uses the DVF mutation id (qualified by parcel id when present);
        records without one get a hash of their identifying fields.
        """
        mutation_id = _clean_str(raw.get("id_mutation"))
        if mutation_id:
            parcel_id = _clean_str(raw.get("id_parcelle"))
            if parcel_id:
                return f"{self.source}_{mutation_id}_{parcel_id}"
            return f"{self.source}_{mutation_id}"

        composite = "|".join(
            _canonical(raw.get(field))
            for field in (
                "date_mutation",
                "code_commune",
                "nom_commune",
                "commune",
                "code_postal",
                "valeur_fonciere",
                "surface_reelle_bati",
                "type_local",
                "nombre_pieces_principales",
            )
        )
        digest = hashlib.sha1(composite.encode("utf-8")).hexdigest()[:20]
        return f"{self.source}_h{digest}"


def parse_number(value: Any) -> Optional[float]:
    """
    Parse a numeric DVF field.

    Accepts ints, floats and strings using either '.' or ',' as decimal
    separator, with optional spaces as thousands separators.

    Returns:
        Float value or None if unparseable
    """
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        number = float(value)
    else:
        text = str(value).strip()
        for separator in (" ", " ", " "):
            text = text.replace(separator, "")
        try:
            number = float(text.replace(",", "."))
        except ValueError:
            return None
    if not math.isfinite(number):
        return None
    return number


def _is_blank(value: Any) -> bool:
    return value is None or (isinstance(value, str) and not value.strip())


def _clean_str(value: Any) -> Optional[str]:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def _canonical(value: Any) -> str:
    if value is None:
        return ""
    number = parse_number(value)
    if number is not None:
        return repr(number)
    return str(value).strip().upper()


def _clean_postal_code(value: Any) -> Optional[str]:
    text = _clean_str(value)
    if text is None:
        return None
    # Numeric JSON values lose the leading zero ("6000" for Nice)
    if text.isdigit() and len(text) == 4:
        text = text.zfill(5)
    return text


def _parse_int(value: Any) -> Optional[int]:
    number = parse_number(value)
    if number is None or number < 0:
        return None
    return int(number)


def _parse_coordinates(raw_lat: Any, raw_lon: Any):
    lat = parse_number(raw_lat)
    lon = parse_number(raw_lon)
    if lat is None or lon is None:
        return None, None
    if not (-90 <= lat <= 90 and -180 <= lon <= 180):
        return None, None
    return lat, lon


def _parse_date(value: Any) -> Optional[datetime]:
    text = _clean_str(value)
    if not text:
        return None
    for fmt in ("%Y-%m-%d", "%d/%m/%Y", "%Y-%m-%dT%H:%M:%S"):
        try:
            return datetime.strptime(text[:19], fmt).replace(tzinfo=timezone.utc)
        except ValueError:
            continue
    return None


def _build_title(type_local: Optional[str], rooms: Optional[int], city: Optional[str]) -> str:
    parts = [type_local or "Bien"]
    if rooms:
        parts.append(f"{rooms} pièces")
    return f"{' '.join(parts)} - {city or 'France'}"


def _build_description(
    city: Optional[str],
    postal_code: Optional[str],
    surface: float,
    rooms: Optional[int]
) -> str:
    return (
        f"Vente immobilière à {city or 'N/A'} ({postal_code or 'N/A'}). "
        f"Surface: {surface:g}m². {rooms if rooms is not None else 'N/A'} pièces."
    )
