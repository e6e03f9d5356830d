import argparse
import random
import sys
from pathlib import Path

sys.path.append(str(Path(__file__).resolve().parents[1]))

from mutual_match.database import SessionLocal
from mutual_match.main import create_tables
from mutual_match.schemas import ProfileSnapshot
from mutual_match.services.profiles import ProfileStore
from mutual_match.store import DocumentStore

FIRST_NAMES = ["Ana", "Carlos", "Lucía", "Mateo", "Valentina", "Santiago", "Camila", "Diego", "Sofía", "Andrés"]
LAST_NAMES = ["García", "López", "Martínez", "Rodríguez", "Gómez", "Díaz", "Torres", "Ramírez"]
CITIES = ["Bogotá, Colombia", "Medellín, Colombia", "Cali, Colombia", "Barranquilla, Colombia"]
HOBBIES = ["Música", "Arte", "Fotografía", "Cine", "Fútbol", "Senderismo", "Ciclismo", "Cocina", "Yoga", "Lectura"]


def build_profiles(n_users: int, seed: int, opted_out_ratio: float) -> list[ProfileSnapshot]:
    rng = random.Random(seed)
    profiles: list[ProfileSnapshot] = []
    for i in range(n_users):
        first = rng.choice(FIRST_NAMES)
        last = rng.choice(LAST_NAMES)
        opted_in = rng.random() >= opted_out_ratio
        profiles.append(
            ProfileSnapshot(
                id=f"test_user_{i + 1}",
                display_name=f"{first} {last}",
                email=f"{first.lower()}.{last.lower()}{i + 1}@test.com",
                age=rng.randint(20, 40),
                location=rng.choice(CITIES),
                description=f"{first} busca nuevas amistades para compartir planes.",
                hobbies=rng.sample(HOBBIES, k=4),
                has_matching_consent=opted_in,
                matching_enabled=opted_in,
                is_public=True,
            )
        )
    return profiles


def main() -> None:
    parser = argparse.ArgumentParser(description="Seed test profiles for weekly matching")
    parser.add_argument("--n-users", type=int, default=20)
    parser.add_argument("--seed", type=int, default=42)
    parser.add_argument("--opted-out-ratio", type=float, default=0.2)
    args = parser.parse_args()

    create_tables()
    profiles = ProfileStore(DocumentStore(SessionLocal))
    seeded = build_profiles(args.n_users, args.seed, args.opted_out_ratio)
    for profile in seeded:
        profiles.upsert_profile(profile)

    print("Seed completed")
    print(f"- profiles: {len(seeded)}")
    print(f"- opted_in: {sum(1 for p in seeded if p.has_matching_consent)}")


if __name__ == "__main__":
    main()
