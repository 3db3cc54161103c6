#!/usr/bin/env python3
"""Create or update a stay so guests can apply to it."""

import asyncio
from datetime import UTC, datetime
from decimal import Decimal

from sqlalchemy import select

from app.database import async_session_maker
from app.models.stay import Stay


async def create_stay(
    stay_id: str,
    title: str,
    location: str,
    start_date: datetime,
    end_date: datetime,
    price: Decimal,
    slots: int,
) -> None:
    """Create a stay if it doesn't exist, otherwise update it."""
    async with async_session_maker() as session:
        result = await session.execute(select(Stay).where(Stay.stay_id == stay_id))
        stay = result.scalar_one_or_none()

        if stay:
            stay.title = title
            stay.location = location
            stay.start_date = start_date
            stay.end_date = end_date
            stay.price_usdc = price
            stay.price_usdt = price
            stay.slots_total = slots
            await session.commit()
            print(f"Updated existing stay: {stay_id}")
        else:
            session.add(
                Stay(
                    stay_id=stay_id,
                    title=title,
                    location=location,
                    start_date=start_date,
                    end_date=end_date,
                    price_usdc=price,
                    price_usdt=price,
                    slots_total=slots,
                    allow_waitlist=True,
                )
            )
            await session.commit()
            print(f"Created stay: {stay_id}")

        print(f"Title: {title}")
        print(f"Dates: {start_date:%Y-%m-%d} to {end_date:%Y-%m-%d}")
        print(f"Price: {price} USDC/USDT")


def _date(value: str) -> datetime:
    return datetime.strptime(value, "%Y-%m-%d").replace(tzinfo=UTC)


if __name__ == "__main__":
    import argparse

    parser = argparse.ArgumentParser(description="Create a stay")
    parser.add_argument("--stay-id", required=True, help="Public slug, e.g. bali-2025")
    parser.add_argument("--title", required=True, help="Stay title")
    parser.add_argument("--location", required=True, help="Location")
    parser.add_argument("--start", required=True, type=_date, help="Start date (YYYY-MM-DD)")
    parser.add_argument("--end", required=True, type=_date, help="End date (YYYY-MM-DD)")
    parser.add_argument("--price", default="300", type=Decimal, help="Base price in USD")
    parser.add_argument("--slots", default=20, type=int, help="Number of slots")

    args = parser.parse_args()

    asyncio.run(
        create_stay(
            stay_id=args.stay_id,
            title=args.title,
            location=args.location,
            start_date=args.start,
            end_date=args.end,
            price=args.price,
            slots=args.slots,
        )
    )
