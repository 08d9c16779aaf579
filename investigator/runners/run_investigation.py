from __future__ import annotations

import argparse
import asyncio
import json
import logging
from pathlib import Path
from typing import List, Optional, Sequence

from investigator.config.log_setup import configure_logging
from investigator.config.settings import load_settings
from investigator.data.bank_client import BankDataClient
from investigator.llm.gateway import OpenAIGateway
from investigator.models import Alert
from investigator.orchestrator import InvestigationOrchestrator

logger = logging.getLogger("investigator.runner")

BASE_DIR = Path(__file__).resolve().parents[2]

# outputs
OUT_DIR = BASE_DIR / "eval_results"
DEFAULT_OUTPUT_PATH = OUT_DIR / "investigation_outputs.jsonl"


def parse_args(argv: Optional[Sequence[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Investigate alerts by id and write one JSON line per alert.")
    parser.add_argument("alert_ids", nargs="+", type=int, help="Alert ids to investigate")
    parser.add_argument("--out", type=Path, default=DEFAULT_OUTPUT_PATH, help="Output JSONL path")
    parser.add_argument("--env-file", default=None, help="Optional .env file to load")
    return parser.parse_args(argv)


async def run(alert_ids: List[int], out_path: Path, env_file: Optional[str] = None) -> int:
    settings = load_settings(env_file)
    configure_logging(settings.log_level)

    gateway = OpenAIGateway.from_settings(settings)
    out_path.parent.mkdir(parents=True, exist_ok=True)

    total = 0
    llm_ok = 0

    try:
        async with BankDataClient.from_settings(settings) as bank_client:
            orchestrator = InvestigationOrchestrator.from_settings(settings, bank_client, gateway)

            with out_path.open("w") as out:
                for alert_id in alert_ids:
                    total += 1
                    response = await orchestrator.analyze_alert(Alert(id=alert_id))

                    if response.narrative_source == "llm":
                        llm_ok += 1

                    record = {"alert_id": alert_id, **response.model_dump(mode="json", by_alias=True)}
                    out.write(json.dumps(record) + "\n")
    finally:
        await gateway.aclose()

    logger.info("Investigated %d alert(s), %d with model narrative -> %s", total, llm_ok, out_path)
    return total


def main(argv: Optional[Sequence[str]] = None) -> None:
    args = parse_args(argv)
    asyncio.run(run(args.alert_ids, args.out, args.env_file))


if __name__ == "__main__":
    main()
