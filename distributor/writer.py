import csv
import json
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from distributor.models import EligibilitySnapshot


@dataclass
class Writer:
    """
    Writes human-readable reports for a distribution run under `reports_dir/name`
    """

    reports_dir: str
    name: str

    @property
    def path(self) -> str:
        return f"{self.reports_dir}/{self.name}"

    @property
    def csv_path(self) -> str:
        return f"{self.path}/csv"

    @property
    def json_path(self) -> str:
        return f"{self.path}/json"

    # create the directory in the reports folder for csv and json if it doesn't exist
    def _create_dir(self) -> None:
        Path(self.csv_path).mkdir(parents=True, exist_ok=True)
        Path(self.json_path).mkdir(parents=True, exist_ok=True)

    @staticmethod
    def write_csv(rows: list[dict[str, Any]], path: str) -> None:
        fieldnames = list(rows[0].keys()) if rows else []
        with open(path, "w+", newline="") as f:
            writer = csv.DictWriter(f, delimiter=",", fieldnames=fieldnames)
            writer.writeheader()
            writer.writerows(rows)

    def to_csv(self, rows: list[dict[str, Any]], name: str) -> None:
        self._create_dir()
        self.write_csv(rows, f"{self.csv_path}/{name}.csv")

    def to_json(self, data: Any, name: str) -> None:
        self._create_dir()
        with open(f"{self.json_path}/{name}.json", "w") as f:
            json.dump(data, f, indent=4)

    def to_csv_and_json(self, rows: list[dict[str, Any]], name: str) -> None:
        self.to_json(rows, name)
        self.to_csv(rows, name)

    def write_snapshot(self, snapshot: EligibilitySnapshot) -> None:
        """Per-holder balances and shares, plus a one-row summary"""
        amounts = snapshot.amounts
        rows = [
            {
                "address": h.address,
                "balance": str(h.balance),
                "amount": str(amounts.get(h.address, 0)),
            }
            for h in snapshot.holders
        ]
        self.to_csv_and_json(rows, "eligibility")
        self.to_csv_and_json(
            [
                {
                    "block": str(snapshot.block),
                    "total_amount": str(snapshot.total_amount),
                    "total_supply": str(snapshot.total_supply),
                    "distributed": str(snapshot.distributed),
                    "dust": str(snapshot.dust),
                    "holders": len(snapshot.holders),
                    "eligible": len(snapshot.entries),
                }
            ],
            "summary",
        )
