"""
Seed the asset ledger with sample data
======================================

1. USERS - one admin, one customer and one reviewer account
2. ASSETS - 15 unfilled assets spread over three factories and five assignees

Existing data is left alone: users are created only if their email is free,
assets only if the ledger is empty.

Run: MODE=local python seed_database.py
"""
import asyncio
import random
from datetime import timedelta

from sqlalchemy import select

from config import settings
from core.logging import configure_logging
from core.security import get_password_hash
from db import AsyncSessionLocal, init_db
from db_models.user import User, UserRole
from ledger.models import Asset, AssetStatus, utcnow
from ledger.store import SqlRecordStore


USERS = [
    {"email": "admin@example.com", "password": "admin1234", "full_name": "管理者", "role": UserRole.ADMIN},
    {"email": "tanaka@example.com", "password": "customer1234", "full_name": "田中", "role": UserRole.CUSTOMER},
    {"email": "mudaless@example.com", "password": "reviewer1234", "full_name": "ムダレス", "role": UserRole.REVIEWER},
]

ASSIGNEES = ["田中", "佐藤", "鈴木", "山田", "高橋"]
EQUIPMENT = ["空調機", "配電盤", "照明設備", "換気扇", "ポンプ", "コンプレッサー", "ボイラー", "冷凍機"]
FACTORIES = ["富津工場", "千葉工場", "東京工場"]


def sample_assets(count: int = 15) -> list[Asset]:
    # Fixed seed so every run produces the same amounts
    rng = random.Random(20251101)
    now = utcnow()
    assets = []
    for i in range(count):
        asset_number = f"0101F10000{i + 5:02d}"
        assignee = ASSIGNEES[i % len(ASSIGNEES)]
        assets.append(Asset(
            id=asset_number,
            asset_number=asset_number,
            equipment_name=EQUIPMENT[i % len(EQUIPMENT)],
            acquisition_date=f"{2010 + i % 10}-{i % 12 + 1:02d}-{(i * 7) % 28 + 1:02d}",
            acquisition_amount=rng.randrange(3_000_000, 8_000_000),
            lifespan_years=15,
            factory=FACTORIES[i % len(FACTORIES)],
            status=AssetStatus.UNFILLED,
            input_by=assignee,
            assigned_to=assignee,
            updated_at=now - timedelta(minutes=count - i),
        ))
    return assets


async def seed_users(session) -> int:
    created = 0
    for data in USERS:
        result = await session.execute(select(User).where(User.email == data["email"]))
        if result.scalar_one_or_none() is not None:
            print(f"  [skip] {data['email']} already exists")
            continue
        session.add(User(
            email=data["email"],
            hashed_password=get_password_hash(data["password"]),
            full_name=data["full_name"],
            role=data["role"].value,
            is_active=True,
        ))
        created += 1
        print(f"  Added user: {data['email']} ({data['role'].value})")
    await session.commit()
    return created


async def seed_assets(session) -> int:
    store = SqlRecordStore(session)
    existing = await store.fetch_all()
    if existing:
        print(f"  [skip] ledger already has {len(existing)} assets")
        return 0
    stored = await store.upsert_many(sample_assets())
    for asset in stored:
        print(f"  Added: {asset.asset_number} - {asset.equipment_name} ({asset.factory})")
    return len(stored)


async def main() -> None:
    configure_logging("WARNING")
    if AsyncSessionLocal is None:
        raise SystemExit("DATABASE_URL is not set; nothing to seed")

    print("=" * 60)
    print("ASSET LEDGER SEED")
    print("=" * 60)
    print(f"Database: {settings.DATABASE_URL}")

    await init_db()
    async with AsyncSessionLocal() as session:
        print("\nUsers:")
        users = await seed_users(session)
        print("\nAssets:")
        assets = await seed_assets(session)

    print(f"\n[OK] {users} users and {assets} assets created")


if __name__ == "__main__":
    asyncio.run(main())
