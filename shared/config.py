"""
Shared Configuration Module

Central configuration for the registry pipeline, the API and the CLI.
Runtime settings come from environment variables (or .env); the curated
review decisions (exclusions, manual overrides) are static constants below.
"""

from pathlib import Path
from typing import Dict, List
from pydantic_settings import BaseSettings
from functools import lru_cache


class Settings(BaseSettings):
    """Application settings loaded from environment variables"""

    # ===== Source Labels =====
    source_1_label: str = "strategy_1"
    source_2_label: str = "strategy_2"

    # ===== Reconciliation Settings =====
    link_separator: str = "\n"
    contact_separator: str = "; "
    strict_consistency: bool = False  # Raise on within-group disagreements

    # ===== Summary Settings =====
    top_n_summary: int = 10

    # ===== File Settings =====
    max_file_size_mb: int = 50

    # ===== Backend Settings =====
    backend_host: str = "0.0.0.0"
    backend_port: int = 8000

    # ===== Paths =====
    project_root: Path = Path(__file__).parent.parent
    output_dir: Path = project_root / "output"

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        env_prefix = "REGISTRY_"
        case_sensitive = False


@lru_cache()
def get_settings() -> Settings:
    """
    Get cached settings instance

    Returns:
        Settings instance
    """
    return Settings()


# ===== Constants =====

# Canonical name of the "not identified" placeholder group
UNIDENTIFIED_NAME = "NI"

# Databases removed from the registry after manual review
# (non-inpatient, imaging-only, terminated or otherwise ineligible)
EXCLUDED_DATABASES = frozenset([
    "UK Biobank",
    "Flatiron Health",
    "Optum Labs Data Warehouse (OLDW)",
    "Alzheimer's Disease Neuroimaging Initiative (ADNI)",
    "National Lung Screening Trial (NLST)",
    "Osteoarthritis Initiative (OAI)",
    "Framingham Heart Study",
    "Nurses' Health Study",
    "Women's Health Initiative (WHI)",
    "Health and Retirement Study (HRS)",
    "National Health and Nutrition Examination Survey (NHANES)",
    "Multi-Ethnic Study of Atherosclerosis (MESA)",
    "Atherosclerosis Risk in Communities (ARIC)",
    "China Kadoorie Biobank",
    "Millennium Cohort Study",
])

# Publications for these databases describe non-shareable data
AVAILABILITY_OVERRIDES: Dict[str, str] = {
    "Clalit Health Services": "No",
    "US Department of Veterans Affairs (VA) Corporate Data Warehouse": "No",
}

# Datatype flags missed by the category extraction, forced to 1
DATATYPE_OVERRIDES: Dict[str, List[str]] = {
    "Danish National Patient Registry (DNPR)": ["type_national_registry"],
    "Système National des Données de Santé (SNDS)": [
        "type_national_registry",
        "type_insurance_claims",
    ],
    "Korean National Health Insurance Service (NHIS)": ["type_insurance_claims"],
    "Assistance Publique - Hôpitaux de Paris (AP-HP)": ["type_ehr"],
    "PCORnet": ["type_ehr", "type_disease_network"],
}

# Flag column -> category label used by the extraction form
DATATYPE_CATEGORIES: Dict[str, str] = {
    'type_ehr': 'Hospital data (electronic health record)',
    'type_insurance_claims': 'Insurance/claims data',
    'type_disease_network': 'Disease specific network',
    'type_national_registry': 'National registries',
}

DATATYPE_FLAGS = list(DATATYPE_CATEGORIES.keys())

# Collection status -> ongoing code (anything else is 3 = unknown)
ONGOING_CODES: Dict[str, int] = {
    'Yes': 1,
    'No': 2,
}
ONGOING_UNKNOWN = 3

# Contact registry header -> standard column
CONTACT_REGISTRY_COLUMNS: Dict[str, str] = {
    'database': 'name',
    'name of database': 'name',
    'database name': 'name',
    'contact person': 'name_contact_person_db',
    'name contact person': 'name_contact_person_db',
    'email': 'email_contact_person_db',
    'email contact person': 'email_contact_person_db',
    'contact form': 'link_contact_form',
    'link to contact form': 'link_contact_form',
}

CONTACT_FIELDS = [
    'name_contact_person_db',
    'email_contact_person_db',
    'link_contact_form',
]

# Leading columns of the final registry (publication pairs follow)
FINAL_COLUMNS = [
    'record_id',
    'name',
    'name_contact_person_db',
    'email_contact_person_db',
    'link_contact_form',
    'country',
    'datatype',
    'link',
    'ongoing',
    'available',
    'occurrences',
    'type_ehr',
    'type_insurance_claims',
    'type_disease_network',
    'type_national_registry',
    'type_other',
]
