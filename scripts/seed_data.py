from __future__ import annotations

import argparse
import sys
from pathlib import Path

from dotenv import load_dotenv

PROJECT_ROOT = Path(__file__).resolve().parents[1]
sys.path.insert(0, str(PROJECT_ROOT))
load_dotenv(PROJECT_ROOT / ".env")

from leadflow.core.enums import Stage  # noqa: E402
from leadflow.core.startup import init_db  # noqa: E402
from leadflow.schemas.leads import LeadCreateRequest  # noqa: E402
from leadflow.services.lead_service import LeadService  # noqa: E402
from leadflow.services.status_catalog import definition_for  # noqa: E402

SEED_LEADS = [
    ("Lucia", "Quispe", "987654321", "lucia.quispe@example.com", "Lima", Stage.PENDING, None),
    ("Mateo", "Rojas", "912345678", "mateo.rojas@example.com", "Arequipa", Stage.PENDING, None),
    ("Valeria", "Flores", "923456789", None, "Cusco", Stage.CONTACTED, 7),
    ("Diego", "Torres", "934567890", "diego.torres@example.com", "Trujillo", Stage.APPOINTMENT_PENDING, 7),
    ("Camila", "Mendoza", "945678901", None, "Piura", Stage.WON, 8),
    ("Sebastian", "Vargas", "956789012", "sebastian.vargas@example.com", "Lima", Stage.LOST, 8),
]


def seed(campaign_name: str, owner_actor_id: int) -> None:
    init_db()
    with LeadService() as service:
        campaign = service.create_campaign(campaign_name)
        print(f"Seeding campaign '{campaign.name}' ({campaign.id})...")
        for first, last, phone, email, city, stage, owner_id in SEED_LEADS:
            lead = service.create_lead(
                LeadCreateRequest(
                    first_name=first,
                    last_name=last,
                    phone=phone,
                    email=email,
                    city=city,
                    origin="seed",
                    campaign_id=campaign.id,
                )
            )
            if owner_id is not None:
                service.set_owner(lead.id, owner_id, owner_actor_id)
                service.set_stage(lead.id, definition_for(stage).catalog_id, owner_actor_id)
            print(f"  {first} {last}: {stage.value}")
    print("Seed complete.")


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Seed a demo campaign with leads across the board.")
    parser.add_argument("--campaign", default="Demo campaign")
    parser.add_argument("--actor-id", type=int, default=1)
    args = parser.parse_args()
    seed(args.campaign, args.actor_id)
