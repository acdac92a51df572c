"""Seed data for development and demos."""

import logging
from datetime import date, datetime

from sqlalchemy.orm import Session

from ecosangam_api.auth.capabilities import RECORD_STORE_WRITER
from ecosangam_api.auth.credentials import hash_credential
from ecosangam_api.models import FieldMeasurement, Organization, Project, User
from ecosangam_api.registry.service import ProjectRegistry

logger = logging.getLogger(__name__)

DEMO_ORGANIZATIONS = [
    {"id": "org-ecosangam", "name": "EcoSangam Platform", "type": "private", "location": "New Delhi"},
    {"id": "org-green-earth", "name": "Green Earth NGO", "type": "NGO", "location": "Kolkata, West Bengal"},
    {"id": "org-sundarbans", "name": "Sundarbans Panchayat", "type": "panchayat", "location": "Sundarbans, West Bengal"},
    {"id": "org-moefcc", "name": "Ministry of Environment", "type": "government", "location": "New Delhi"},
    {"id": "org-csi", "name": "Carbon Standards International", "type": "verifier", "location": "Bengaluru"},
]

# Demo logins; only bcrypt hashes of these are stored
DEMO_USERS = [
    ("usr-admin", "Admin User", "admin@ecosangam.org", "admin", "org-ecosangam", "admin123"),
    ("usr-ngo", "NGO Manager", "ngo@example.org", "ngo", "org-green-earth", "ngo123"),
    ("usr-panchayat", "Panchayat Officer", "panchayat@village.gov", "panchayat", "org-sundarbans", "panchayat123"),
    ("usr-gov", "Government Official", "gov@environment.gov", "government", "org-moefcc", "gov123"),
    ("usr-verifier", "Carbon Verifier", "verifier@carbon.org", "verifier", "org-csi", "verifier123"),
]

DEMO_PROJECTS = [
    {
        "id": "IND001",
        "name": "Sundarbans Mangrove Conservation",
        "description": "Mangrove restoration protecting tiger habitat and coastal communities",
        "ecosystem_type": "mangrove",
        "latitude": 21.9497,
        "longitude": 88.7500,
        "state": "West Bengal",
        "district": "South 24 Parganas",
        "area_hectares": 2500.0,
        "methodology": "vcs",
        "start_date": date(2023, 1, 15),
        "created_by": "usr-panchayat",
        "organization_id": "org-sundarbans",
        "active": True,
    },
    {
        "id": "IND002",
        "name": "Gulf of Mannar Seagrass Restoration",
        "description": "Seagrass restoration in a marine national park protecting dugong habitat",
        "ecosystem_type": "seagrass",
        "latitude": 9.0648,
        "longitude": 79.1378,
        "state": "Tamil Nadu",
        "district": "Ramanathapuram",
        "area_hectares": 850.0,
        "methodology": "gold_standard",
        "start_date": date(2023, 4, 20),
        "created_by": "usr-gov",
        "organization_id": "org-moefcc",
        "active": True,
    },
    {
        "id": "IND003",
        "name": "Chilika Lake Wetland Conservation",
        "description": "Brackish water lagoon restoration protecting migratory birds and fisheries",
        "ecosystem_type": "tidal_wetland",
        "latitude": 19.7167,
        "longitude": 85.3167,
        "state": "Odisha",
        "district": "Puri",
        "area_hectares": 1200.0,
        "methodology": "vcs",
        "start_date": date(2023, 9, 10),
        "created_by": "usr-gov",
        "organization_id": "org-moefcc",
        "active": True,
    },
    {
        "id": "IND004",
        "name": "Bhitarkanika Mangrove Sanctuary",
        "description": "Mangrove ecosystem restoration protecting saltwater crocodiles",
        "ecosystem_type": "mangrove",
        "latitude": 20.7071,
        "longitude": 86.9220,
        "state": "Odisha",
        "district": "Kendrapara",
        "area_hectares": 672.0,
        "methodology": "vcs",
        "start_date": date(2023, 2, 28),
        "created_by": "usr-ngo",
        "organization_id": "org-green-earth",
        "active": True,
    },
    {
        "id": "IND005",
        "name": "Pulicat Lake Conservation Project",
        "description": "Saltwater lagoon restoration protecting flamingo habitat and local livelihoods",
        "ecosystem_type": "saltmarsh",
        "latitude": 13.6667,
        "longitude": 80.1833,
        "state": "Tamil Nadu",
        "district": "Tiruvallur",
        "area_hectares": 460.0,
        "methodology": "climate_action_reserve",
        "start_date": date(2023, 11, 15),
        "created_by": "usr-ngo",
        "organization_id": "org-green-earth",
        "active": True,
    },
    {
        "id": "IND006",
        "name": "Pichavaram Mangrove Forest",
        "description": "Mangrove forest restoration with backwater tourism integration",
        "ecosystem_type": "mangrove",
        "latitude": 11.4500,
        "longitude": 79.7667,
        "state": "Tamil Nadu",
        "district": "Cuddalore",
        "area_hectares": 115.0,
        "methodology": "vcs",
        "start_date": date(2024, 2, 1),
        "created_by": "usr-ngo",
        "organization_id": "org-green-earth",
        "active": False,
    },
]


def seed_organizations(db: Session):
    """Seed demo organizations."""
    for data in DEMO_ORGANIZATIONS:
        if db.get(Organization, data["id"]) is None:
            db.add(Organization(**data))
    db.flush()


def seed_users(db: Session):
    """Seed demo users with hashed credentials."""
    for user_id, name, email, role, organization_id, credential in DEMO_USERS:
        if db.query(User).filter(User.email == email).first() is None:
            db.add(
                User(
                    id=user_id,
                    name=name,
                    email=email,
                    role=role,
                    organization_id=organization_id,
                    credential_hash=hash_credential(credential),
                )
            )
    db.flush()


def seed_projects(db: Session):
    """Seed demo projects with zero credits; active ones get a baseline measurement."""
    registry = ProjectRegistry(db)
    for data in DEMO_PROJECTS:
        if db.get(Project, data["id"]) is not None:
            continue
        fields = {key: value for key, value in data.items() if key != "active"}
        project = Project(status="pending", total_credits_issued=0, available_credits=0, **fields)
        db.add(project)
        db.flush()

        if data["active"]:
            db.add(
                FieldMeasurement(
                    id=f"seed-baseline-{project.id}",
                    type="monitoring",
                    project_id=project.id,
                    recorded_at=datetime.combine(project.start_date, datetime.min.time()),
                    latitude=project.latitude,
                    longitude=project.longitude,
                    gps_accuracy=5.0,
                    data_json={"survey": "baseline"},
                    photographs=[],
                    field_notes="Baseline survey",
                    field_officer="Seed",
                    organization_id=project.organization_id,
                    device_id="seed",
                    submitted_by=project.created_by,
                )
            )
            registry.transition(project, "active", RECORD_STORE_WRITER)
    db.flush()


def seed_all(db: Session):
    """Seed all demo data."""
    seed_organizations(db)
    seed_users(db)
    seed_projects(db)
    db.commit()
    logger.info("Seed data created")
