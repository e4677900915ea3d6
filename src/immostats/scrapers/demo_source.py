"""
Demo Data Source

Offline stand-in for the DVF API. Generates DVF-shaped mutation records so
the full ingestion pipeline can run without network access.
"""
import random
from datetime import date, timedelta
from typing import Any, Dict, List, Optional

from config.settings import settings
from src.immostats.utils.logger import get_logger

logger = get_logger(__name__)

# Department -> (commune, postal code, latitude, longitude)
DEPARTMENT_CITIES = {
    "75": ("Paris", "75011", 48.8566, 2.3522),
    "92": ("Boulogne-Billancourt", "92100", 48.8397, 2.2399),
    "93": ("Saint-Denis", "93200", 48.9362, 2.3574),
    "94": ("Vincennes", "94300", 48.8474, 2.4390),
    "69": ("Lyon", "69003", 45.7640, 4.8357),
    "13": ("Marseille", "13006", 43.2965, 5.3698),
    "33": ("Bordeaux", "33000", 44.8378, -0.5792),
    "31": ("Toulouse", "31000", 43.6047, 1.4442),
    "44": ("Nantes", "44000", 47.2184, -1.5536),
    "06": ("Nice", "06000", 43.7102, 7.2620),
}

# DVF type_local label -> price per m² range
TYPE_PRICE_RANGES = {
    "Appartement": (3000, 11000),
    "Maison": (2000, 7000),
    "Dépendance": (500, 2000),
}


class DemoSource:
    """
    Deterministic generator honouring the fetch_partition contract.

    The same (partition, period) pair always yields the same records, so
    repeated demo runs update rows instead of piling up duplicates.
    """

    def __init__(self, records_per_partition: Optional[int] = None, seed: Optional[int] = None):
        self.records_per_partition = (
            records_per_partition if records_per_partition is not None
            else settings.demo_records_per_partition
        )
        self.seed = seed if seed is not None else settings.demo_seed
        logger.info("demo_source_initialized", records_per_partition=self.records_per_partition)

    def fetch_partition(self, partition_key: str, period: int) -> List[Dict[str, Any]]:
        rng = random.Random(f"{self.seed}:{partition_key}:{period}")
        city, postal_code, lat, lon = DEPARTMENT_CITIES.get(
            partition_key, (f"Commune {partition_key}", f"{partition_key}000", 46.6, 2.4)
        )

        records = [
            self._generate_record(rng, index, partition_key, period, city, postal_code, lat, lon)
            for index in range(self.records_per_partition)
        ]

        logger.info("demo_partition_generated", partition=partition_key, period=period, count=len(records))
        return records

    def _generate_record(
        self,
        rng: random.Random,
        index: int,
        partition_key: str,
        period: int,
        city: str,
        postal_code: str,
        lat: float,
        lon: float
    ) -> Dict[str, Any]:
        type_local = rng.choice(list(TYPE_PRICE_RANGES))
        low, high = TYPE_PRICE_RANGES[type_local]
        surface = rng.randint(20, 170)
        rooms = rng.randint(1, 6)
        price = surface * rng.randint(low, high)
        mutation_date = date(period, 1, 1) + timedelta(days=rng.randint(0, 364))

        return {
            "id_mutation": f"{period}-{partition_key}-DEMO{index:05d}",
            "date_mutation": mutation_date.isoformat(),
            "nature_mutation": "Vente",
            "valeur_fonciere": f"{price:.2f}".replace(".", ","),
            "code_postal": postal_code,
            "nom_commune": city,
            "code_departement": partition_key,
            "type_local": type_local,
            "surface_reelle_bati": surface,
            "nombre_pieces_principales": rooms,
            "latitude": round(lat + rng.uniform(-0.05, 0.05), 6),
            "longitude": round(lon + rng.uniform(-0.05, 0.05), 6),
        }
