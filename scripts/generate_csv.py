"""Generate sample OrgMeter payment CSV files for testing the uploader."""
import csv
import random
import sys
from datetime import date, timedelta

HEADER = ["Payment ID", "Advance", "From", "To", "Type", "Amount", "Paid Date", "Due Date", "Paid"]

# fieldMappings to send with files produced by this script
FIELD_MAPPINGS = {
    "paymentId": "Payment ID",
    "advanceId": "Advance",
    "from": "From",
    "to": "To",
    "type": "Type",
    "amount": "Amount",
    "paidDate": "Paid Date",
    "dueAt": "Due Date",
    "paid": "Paid",
}

FUNDER_NAME = "Funder"

SYNDICATORS = [
    "Atlas Capital",
    "Blue Harbor Partners",
    "Cedar Ridge Fund",
    "Delta Syndicate",
    "Evergreen Holdings",
]

INBOUND_TYPES = ["Syndicator Deposit", "Syndication Purchase"]

OUTBOUND_TYPES = [
    "Syndicator Withdrawal",
    "Syndication Payout",
    "Syndication Payout (Adjustment)",
    "Syndication Payout Fee",
    "Syndication Payout Fee (Adjustment)",
]


def format_amount(amount: float) -> str:
    """Format like an accounting export: $1,234.56 or ($1,234.56)."""
    text = f"${abs(amount):,.2f}"
    return f"({text})" if amount < 0 else text


def build_rows(num_rows: int, seed: int = None) -> list[list[str]]:
    """
    Build payment rows, header first.

    Args:
        num_rows: Number of payment rows to generate
        seed: Optional random seed for repeatable output

    Returns:
        List of CSV rows
    """
    rng = random.Random(seed)
    start = date(2024, 1, 1)
    rows = [HEADER]

    for i in range(num_rows):
        payment_type = rng.choice(INBOUND_TYPES + OUTBOUND_TYPES)
        syndicator = rng.choice(SYNDICATORS)
        if payment_type in INBOUND_TYPES:
            sender, receiver = syndicator, FUNDER_NAME
        else:
            sender, receiver = FUNDER_NAME, syndicator

        amount = round(rng.uniform(50, 25000), 2)
        if payment_type.endswith("(Adjustment)"):
            amount = -amount

        due = start + timedelta(days=rng.randint(0, 365))
        paid_on = due + timedelta(days=rng.randint(0, 5))

        rows.append([
            str(100000 + i),
            f"ADV-{rng.randint(1, 500):05d}",
            sender,
            receiver,
            payment_type,
            format_amount(amount),
            paid_on.strftime("%m/%d/%Y"),
            due.strftime("%m/%d/%Y"),
            rng.choice(["true", "false", "yes", "1"]),
        ])

    return rows


def generate_csv(num_rows: int, output_file: str) -> None:
    """
    Write a CSV file with random payment data.

    Args:
        num_rows: Number of payment rows to generate
        output_file: Output CSV file path
    """
    with open(output_file, "w", newline="") as f:
        writer = csv.writer(f)
        for i, row in enumerate(build_rows(num_rows)):
            writer.writerow(row)

            # Print progress every 10,000 rows
            if i and i % 10000 == 0:
                print(f"Generated {i:,} rows...")

    print(f"✅ Successfully generated {num_rows:,} payments in {output_file}")


def main():
    """Main function to parse arguments and generate CSV."""
    if len(sys.argv) < 2:
        print("Usage: python generate_csv.py <num_rows> [output_file]")
        print("Example: python generate_csv.py 5000 payments_5k.csv")
        sys.exit(1)

    num_rows = int(sys.argv[1])
    output_file = sys.argv[2] if len(sys.argv) > 2 else f"payments_{num_rows}.csv"

    print(f"Generating CSV with {num_rows:,} rows...")
    generate_csv(num_rows, output_file)


if __name__ == "__main__":
    main()
