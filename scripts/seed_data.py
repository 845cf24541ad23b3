from __future__ import annotations

import argparse

from packages.shared.schemas.payment import ResetPolicyV1
from services.api.app.db.database import db_session
from services.api.app.db.init_db import init_db
from services.api.app.models.invoice import NumberingConfig
from services.api.app.services.invoicing import load_numbering_config, save_numbering_config


def main() -> int:
    parser = argparse.ArgumentParser(description="Seed the active invoice numbering config for Mesa")
    parser.add_argument("--series", default="A")
    parser.add_argument("--prefix", default="INV-")
    parser.add_argument("--suffix", default="")
    parser.add_argument("--padding", type=int, default=6)
    parser.add_argument(
        "--reset-policy",
        choices=[p.value for p in ResetPolicyV1],
        default=ResetPolicyV1.YEARLY.value,
    )
    parser.add_argument("--disabled", action="store_true", help="Seed numbering as disabled")
    parser.add_argument("--force", action="store_true", help="Overwrite an existing config")
    args = parser.parse_args()

    init_db()

    db = db_session()
    try:
        current = load_numbering_config(db)
        if current.enabled and not args.force:
            print("Numbering config already present; use --force to overwrite")
            return 0

        config = NumberingConfig(
            enabled=not args.disabled,
            series=args.series,
            prefix=args.prefix,
            suffix=args.suffix,
            padding=args.padding,
            reset_policy=ResetPolicyV1(args.reset_policy),
        )
        save_numbering_config(db, config)
        print(f"Seeded numbering config: {config.model_dump(mode='json')}")
        return 0
    finally:
        db.close()


if __name__ == "__main__":
    raise SystemExit(main())
