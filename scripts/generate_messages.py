"""
Sample notification generator for spendsync.

Implements deterministic pseudo-random message generation across the issuer
formats the extractor understands, plus the noise it must reject (OTPs,
promotions, failed payments, statements). Output is one message per line;
`--ingest` feeds the corpus straight into the configured local store.
"""

from __future__ import annotations

import asyncio
import random
import sys
import time
from datetime import date, timedelta
from pathlib import Path
from typing import List, Optional

import typer

from spendsync.config import get_settings
from spendsync.coordinator import IngestionCoordinator
from spendsync.infrastructure import create_store
from spendsync.utils.logging import configure_logging

app = typer.Typer(help="Generate a synthetic notification corpus (one message per line).")

MERCHANTS = [
    ("zomato", "zomato@paytm"),
    ("Swiggy", "swiggy@icici"),
    ("Amazon Pay", "amazonpay@apl"),
    ("Flipkart", "flipkart@axisbank"),
    ("BigBasket", "bigbasket@hdfcbank"),
    ("Uber India", "uber@okaxis"),
    ("IRCTC", "irctc@sbi"),
    ("Netflix", "netflix@icici"),
    ("Apollo Pharmacy", "apollo@ybl"),
    ("Jio Prepaid", "jio@okhdfcbank"),
    ("Ramesh Kirana", "ramesh.kirana@oksbi"),
]
BANKS = ["SBI", "HDFC", "ICICI", "Axis", "Kotak", "PNB"]

# (kind, weight)
KINDS = [
    ("bank-vpa", 30),
    ("gpay", 15),
    ("phonepe", 15),
    ("bank-debit", 15),
    ("otp", 8),
    ("promo", 7),
    ("failed", 5),
    ("statement", 5),
]


def _amount(rng: random.Random) -> str:
    value = round(rng.uniform(10, 25_000), 2)
    return f"{value:,.2f}" if rng.random() < 0.3 else f"{value:.2f}"


def _render(kind: str, rng: random.Random, day: date) -> str:
    name, vpa = rng.choice(MERCHANTS)
    bank = rng.choice(BANKS)
    amount = _amount(rng)
    ref = "".join(rng.choice("0123456789") for _ in range(12))
    account = rng.randint(1000, 9999)

    if kind == "bank-vpa":
        return (
            f"Rs {amount} debited from A/C XX{account} on {day.strftime('%d-%b-%y')} "
            f"to VPA {vpa} via UPI. Ref {ref}. -{bank}"
        )
    if kind == "gpay":
        return f"Paid Rs.{amount} to {name} via GPay. UPI Ref No {ref}"
    if kind == "phonepe":
        return f"You have sent INR {amount} to {name} using PhonePe on {day.strftime('%d %b %Y')}. Txn ID T{ref}"
    if kind == "bank-debit":
        return (
            f"Your a/c XX{account} is debited by Rs {amount} on {day.strftime('%d/%m/%Y')} "
            f"for UPI payment to {name}. UTR {ref} - {bank} Bank"
        )
    if kind == "otp":
        return f"{rng.randint(100000, 999999)} is your OTP for UPI transaction of Rs {amount}. Do not share it with anyone."
    if kind == "promo":
        return f"Congratulations! You won Rs {amount} cashback on your next Paytm payment. Claim now."
    if kind == "failed":
        return f"UPI payment of Rs {amount} to {name} failed. Ref {ref}. Amount will be refunded."
    return f"Your {bank} account statement for {day.strftime('%B %Y')} is ready to view."


def _generate_messages(
    count: int,
    seed: int,
    end: date,
    days: int = 90,
    duplicate_rate: float = 0.05,
) -> List[str]:
    rng = random.Random(seed)
    kinds = [kind for kind, _ in KINDS]
    weights = [weight for _, weight in KINDS]

    messages: List[str] = []
    for _ in range(count):
        if messages and rng.random() < duplicate_rate:
            messages.append(rng.choice(messages))
            continue
        day = end - timedelta(days=rng.randint(0, days))
        messages.append(_render(rng.choices(kinds, weights)[0], rng, day))
    return messages


def _write_corpus(path: Path, messages: List[str]) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    with path.open("w", encoding="utf-8") as f:
        for message in messages:
            f.write(message + "\n")


async def _ingest(messages: List[str]) -> None:
    settings = get_settings()
    store = await create_store(settings)
    try:
        stats = await IngestionCoordinator(store).ingest_many(messages)
    finally:
        await store.close()
    typer.echo(
        f"Ingested {stats['inserted']:,} of {stats['received']:,} messages "
        f"(skipped: {stats['skipped']}, failed: {stats['failed']})"
    )


@app.command()
def main(
    count: int = typer.Option(
        500,
        "--count",
        "-n",
        help="Number of messages to generate.",
    ),
    seed: int = typer.Option(
        42,
        "--seed",
        help="Deterministic RNG seed.",
    ),
    days: int = typer.Option(
        90,
        "--days",
        help="Spread message dates over this many days before today.",
    ),
    output: Path = typer.Option(
        Path("messages.txt"),
        "--output",
        "-o",
        help="Corpus output path.",
    ),
    ingest: bool = typer.Option(
        False,
        "--ingest",
        help="Also ingest the corpus into the configured local store.",
    ),
    end: Optional[str] = typer.Option(
        None,
        "--end",
        help="Latest message date (YYYY-MM-DD); defaults to today.",
    ),
) -> None:
    """
    Generate a synthetic notification corpus and optionally ingest it.
    """
    configure_logging(level=get_settings().log_level)
    start = time.perf_counter()
    end_date = date.fromisoformat(end) if end else date.today()

    typer.echo(f"Generating {count:,} messages -> {output} (seed={seed})")
    messages = _generate_messages(count, seed=seed, end=end_date, days=days)
    _write_corpus(output, messages)
    typer.echo(f"Corpus written in {time.perf_counter() - start:.2f}s")

    if ingest:
        asyncio.run(_ingest(messages))


if __name__ == "__main__":
    try:
        app()
    except KeyboardInterrupt:
        typer.echo("Cancelled by user.", err=True)
        sys.exit(130)
