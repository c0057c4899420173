"""
Seed the Mediscreen notes database.

Creates the application user, the schema-validated `notes` collection,
the test patients' notes and the lookup indexes, then prints the resulting
document count. Meant to run once against a fresh server.

Usage:
    NOTES_MONGODB_URI=mongodb://localhost:27017 python seed_data.py
"""
import os
import sys
import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Tuple

from pydantic import BaseModel
from pymongo import ASCENDING, DESCENDING, MongoClient
from pymongo.errors import PyMongoError

logging.basicConfig(level=logging.INFO)
log = logging.getLogger("notes-seed")

MONGO_URI = os.getenv("NOTES_MONGODB_URI") or os.getenv("MONGO_URI") or "mongodb://localhost:27017"

SUCCESS_MESSAGE = "MongoDB notes database initialised successfully!"


class SeedConfig(BaseModel):
    database: str
    username: str
    password: str
    roles: List[Dict[str, str]]
    collection: str
    validator: Dict[str, Any]
    notes: List[Dict[str, Any]]
    indexes: List[Tuple[str, int]]


class StepResult(BaseModel):
    step: str
    ok: bool
    detail: str = ""
    error: Optional[str] = None
    count: Optional[int] = None


class SeedReport(BaseModel):
    steps: List[StepResult] = []
    count: Optional[int] = None

    @property
    def ok(self) -> bool:
        return all(s.ok for s in self.steps)

    @property
    def failed_step(self) -> Optional[str]:
        for s in self.steps:
            if not s.ok:
                return s.step
        return None


NOTES_VALIDATOR = {
    "$jsonSchema": {
        "bsonType": "object",
        "required": ["patId", "patient", "note"],
        "properties": {
            "patId": {
                "bsonType": "int",
                "description": "patient id - required and must be an integer",
            },
            "patient": {
                "bsonType": "string",
                "description": "patient name - required and must be a string",
            },
            "note": {
                "bsonType": "string",
                "description": "medical note - required and must be a string",
            },
            "createdDate": {
                "bsonType": "date",
                "description": "note creation date",
            },
        },
    }
}

# one entry per test patient profile used by the risk assessment
SAMPLE_NOTES = [
    {"patId": 1, "patient": "TestNone",
     "note": "Le patient déclare qu'il 'se sent très bien' Poids égal ou inférieur au poids recommandé"},
    {"patId": 2, "patient": "TestBorderline",
     "note": "Le patient déclare qu'il ressent beaucoup de stress au travail Il se plaint également que son audition est anormale dernièrement"},
    {"patId": 2, "patient": "TestBorderline",
     "note": "Le patient déclare avoir fait une réaction aux médicaments au cours des 3 derniers mois Il remarque également que son audition continue d'être anormale"},
    {"patId": 3, "patient": "TestInDanger",
     "note": "Le patient déclare qu'il fume depuis peu"},
    {"patId": 3, "patient": "TestInDanger",
     "note": "Le patient déclare qu'il est fumeur et qu'il a cessé de fumer l'année dernière Il se plaint également de crises d'apnée respiratoire anormales Tests de laboratoire indiquant un taux de cholestérol LDL élevé"},
    {"patId": 4, "patient": "TestEarlyOnset",
     "note": "Le patient déclare qu'il lui est devenu difficile de monter les escaliers Il se plaint également d'être essoufflé Tests de laboratoire indiquant que les anticorps sont élevés Réaction aux médicaments"},
    {"patId": 4, "patient": "TestEarlyOnset",
     "note": "Le patient déclare qu'il a mal au dos lorsqu'il reste assis pendant longtemps"},
    {"patId": 4, "patient": "TestEarlyOnset",
     "note": "Le patient déclare avoir commencé à fumer depuis peu Hémoglobine A1C supérieure au niveau recommandé"},
    {"patId": 4, "patient": "TestEarlyOnset",
     "note": "Taille, Poids, Cholestérol, Vertige et Réaction"},
]

DEFAULT_CONFIG = SeedConfig(
    database="mediscreen_notes",
    username="mediscreen",
    password="mediscreen123",
    roles=[{"role": "readWrite", "db": "mediscreen_notes"}],
    collection="notes",
    validator=NOTES_VALIDATOR,
    notes=SAMPLE_NOTES,
    indexes=[("patId", ASCENDING), ("patient", ASCENDING), ("createdDate", DESCENDING)],
)


def build_notes(config: SeedConfig, now: datetime) -> List[Dict[str, Any]]:
    """Copy the sample notes and stamp each one with `now`."""
    return [dict(n, createdDate=now) for n in config.notes]


def select_database(config: SeedConfig, db) -> StepResult:
    # databases are created lazily by the server on first write
    return StepResult(step="select_database", ok=True, detail=f"using {db.name}")


def create_user(config: SeedConfig, db) -> StepResult:
    try:
        db.command("createUser", config.username, pwd=config.password, roles=config.roles)
    except PyMongoError as e:
        return StepResult(step="create_user", ok=False, error=str(e))
    roles = ", ".join(f"{r['role']}@{r['db']}" for r in config.roles)
    return StepResult(step="create_user", ok=True, detail=f"user {config.username} ({roles})")


def create_collection(config: SeedConfig, db) -> StepResult:
    try:
        db.create_collection(config.collection, validator=config.validator)
    except PyMongoError as e:
        return StepResult(step="create_collection", ok=False, error=str(e))
    return StepResult(step="create_collection", ok=True, detail=f"collection {config.collection} with validator")


def insert_notes(config: SeedConfig, db, now: Optional[datetime] = None) -> StepResult:
    docs = build_notes(config, now or datetime.now(timezone.utc))
    try:
        res = db[config.collection].insert_many(docs)
    except PyMongoError as e:
        return StepResult(step="insert_notes", ok=False, error=str(e))
    return StepResult(step="insert_notes", ok=True, detail=f"{len(res.inserted_ids)} notes inserted")


def create_indexes(config: SeedConfig, db) -> StepResult:
    coll = db[config.collection]
    names = []
    try:
        for field, direction in config.indexes:
            names.append(coll.create_index([(field, direction)]))
    except PyMongoError as e:
        return StepResult(step="create_indexes", ok=False, error=str(e))
    return StepResult(step="create_indexes", ok=True, detail="indexes " + ", ".join(names))


def report(config: SeedConfig, db) -> StepResult:
    try:
        count = db[config.collection].count_documents({})
    except PyMongoError as e:
        return StepResult(step="report", ok=False, error=str(e))
    return StepResult(step="report", ok=True, detail=f"{count} notes in {config.collection}", count=count)


STEPS = [select_database, create_user, create_collection, insert_notes, create_indexes, report]


def seed(config: SeedConfig, client) -> SeedReport:
    """
    Run every seeding step in order against `client`.

    Stops at the first failing step; steps already applied are left in
    place. The returned report lists the executed steps and, when the run
    completed, the final document count.
    """
    db = client[config.database]
    result = SeedReport()
    for step in STEPS:
        log.info("step %s on %s", step.__name__, config.database)
        res = step(config, db)
        result.steps.append(res)
        if not res.ok:
            log.error("step %s failed: %s", res.step, res.error)
            return result
        log.info("step %s ok: %s", res.step, res.detail)
    result.count = result.steps[-1].count
    return result


def main():
    client = MongoClient(MONGO_URI)
    try:
        result = seed(DEFAULT_CONFIG, client)
    finally:
        client.close()
    if not result.ok:
        failed = result.steps[-1]
        print(f"Seeding failed at {failed.step}: {failed.error}", file=sys.stderr)
        raise SystemExit(1)
    print(SUCCESS_MESSAGE)
    print("Notes inserted:", result.count)


if __name__ == "__main__":
    main()
