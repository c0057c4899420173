from fastapi import Depends, FastAPI, HTTPException, Request, Response
from fastapi.responses import JSONResponse
from fastapi.middleware.cors import CORSMiddleware
from fastapi.security import HTTPBasic, HTTPBasicCredentials
from pydantic import BaseModel, Field, field_validator
from typing import Any, Dict, List, Optional
from datetime import datetime, timezone
import os
import secrets
import motor.motor_asyncio
import uvicorn
import logging
from bson import ObjectId
from pymongo.errors import PyMongoError

logging.basicConfig(level=logging.INFO)
log = logging.getLogger("notes-service")

# MongoDB configuration
MONGO_URI = os.getenv("NOTES_MONGODB_URI") or os.getenv("MONGO_URI")
DB_NAME = os.getenv("NOTES_DATABASE", "mediscreen_notes")

# Basic auth is only enforced when both values are set
AUTH_USERNAME = os.getenv("NOTES_AUTH_USERNAME")
AUTH_PASSWORD = os.getenv("NOTES_AUTH_PASSWORD")

log.info(f"connecting to mongo: {MONGO_URI}")
log.info(f"using DB: {DB_NAME}")

app = FastAPI(title="Mediscreen Notes Service", version="1.0")

app.add_middleware(
    CORSMiddleware,
    allow_origin_regex=r"https?://(localhost|127\.0\.0\.1)(:\d+)?",
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# Async Mongo client
def connect(uri: str, name: str):
    client = motor.motor_asyncio.AsyncIOMotorClient(uri, serverSelectionTimeoutMS=5000, tz_aware=True)
    return client, client[name]


if MONGO_URI:
    mongo_client, db = connect(MONGO_URI, DB_NAME)
else:
    mongo_client = None
    db = None

security = HTTPBasic(auto_error=False)

PREVIEW_LENGTH = 100
# patId is stored as BSON int32
PAT_ID_MAX = 2**31 - 1


class NoteCreate(BaseModel):
    patId: int = Field(..., gt=0, le=PAT_ID_MAX)
    patient: str = Field(..., max_length=100)
    note: str = Field(..., max_length=5000)

    @field_validator("patient", "note")
    @classmethod
    def not_blank(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("must not be blank")
        return v


class NoteOut(BaseModel):
    id: str
    patId: int
    patient: str
    note: str
    createdDate: Optional[datetime] = None
    preview: str


def preview(text: str) -> str:
    if len(text) <= PREVIEW_LENGTH:
        return text
    return text[:PREVIEW_LENGTH - 3] + "..."


def to_note_out(doc: Dict[str, Any]) -> NoteOut:
    return NoteOut(
        id=str(doc["_id"]),
        patId=doc["patId"],
        patient=doc["patient"],
        note=doc["note"],
        createdDate=doc.get("createdDate"),
        preview=preview(doc["note"]),
    )


def require_auth(credentials: Optional[HTTPBasicCredentials] = Depends(security)):
    if not (AUTH_USERNAME and AUTH_PASSWORD):
        return
    if credentials is None:
        raise HTTPException(status_code=401, detail="authentication required",
                            headers={"WWW-Authenticate": "Basic"})
    user_ok = secrets.compare_digest(credentials.username.encode(), AUTH_USERNAME.encode())
    pwd_ok = secrets.compare_digest(credentials.password.encode(), AUTH_PASSWORD.encode())
    if not (user_ok and pwd_ok):
        raise HTTPException(status_code=401, detail="invalid credentials",
                            headers={"WWW-Authenticate": "Basic"})


def notes_collection():
    if db is None:
        raise HTTPException(status_code=503, detail="database unavailable")
    return db.notes


def object_id(note_id: str) -> Optional[ObjectId]:
    # malformed ids can never match a stored note
    if not ObjectId.is_valid(note_id):
        return None
    return ObjectId(note_id)


async def find_notes(query: Dict[str, Any], newest_first: bool = True) -> List[NoteOut]:
    cursor = notes_collection().find(query)
    if newest_first:
        cursor = cursor.sort("createdDate", -1)
    notes = []
    async for doc in cursor:
        notes.append(to_note_out(doc))
    return notes


@app.get("/notes/health")
async def health():
    """
    Simple health endpoint. Checks whether DB is configured and reachable.
    """
    if db is None:
        return {"status": "degraded", "mongo": "not_configured"}
    try:
        # `server_info` will raise if not reachable
        await mongo_client.server_info()
        return {"status": "ok", "mongo": "ok"}
    except Exception as e:
        log.exception("mongo health check failed")
        return {"status": "degraded", "mongo": "error", "detail": str(e)}


@app.exception_handler(PyMongoError)
async def database_error(request: Request, exc: PyMongoError):
    log.error("database error on %s %s", request.method, request.url.path, exc_info=exc)
    return JSONResponse(status_code=500, content={"detail": str(exc)})


@app.post("/api/v1/notes", status_code=201, response_model=NoteOut, dependencies=[Depends(require_auth)])
async def create_note(body: NoteCreate):
    coll = notes_collection()
    log.debug("creating note for patient %s (%s)", body.patId, body.patient)
    doc = body.model_dump()
    doc["createdDate"] = datetime.now(timezone.utc)
    res = await coll.insert_one(doc)
    doc["_id"] = res.inserted_id
    log.info("note %s created for patient %s", res.inserted_id, body.patient)
    return to_note_out(doc)


@app.get("/api/v1/notes", response_model=List[NoteOut], dependencies=[Depends(require_auth)])
async def all_notes():
    notes = await find_notes({}, newest_first=False)
    log.info("found %d note(s) in total", len(notes))
    return notes


@app.get("/api/v1/notes/patient/{pat_id}", response_model=List[NoteOut], dependencies=[Depends(require_auth)])
async def notes_for_patient(pat_id: int):
    log.debug("looking up notes for patient id %s", pat_id)
    notes = await find_notes({"patId": pat_id})
    log.info("found %d note(s) for patient id %s", len(notes), pat_id)
    return notes


@app.get("/api/v1/notes/patient/name/{patient}", response_model=List[NoteOut],
         dependencies=[Depends(require_auth)])
async def notes_for_patient_name(patient: str):
    log.debug("looking up notes for patient %s", patient)
    notes = await find_notes({"patient": patient})
    log.info("found %d note(s) for patient %s", len(notes), patient)
    return notes


@app.get("/api/v1/notes/{note_id}", response_model=NoteOut, dependencies=[Depends(require_auth)])
async def get_note(note_id: str):
    coll = notes_collection()
    oid = object_id(note_id)
    doc = await coll.find_one({"_id": oid}) if oid else None
    if not doc:
        raise HTTPException(status_code=404, detail=f"note {note_id} not found")
    return to_note_out(doc)


@app.put("/api/v1/notes/{note_id}", response_model=NoteOut, dependencies=[Depends(require_auth)])
async def update_note(note_id: str, body: NoteCreate):
    coll = notes_collection()
    oid = object_id(note_id)
    res = await coll.update_one({"_id": oid}, {"$set": body.model_dump()}) if oid else None
    if res is None or res.matched_count == 0:
        raise HTTPException(status_code=404, detail=f"note {note_id} not found")
    log.info("note %s updated", note_id)
    doc = await coll.find_one({"_id": oid})
    return to_note_out(doc)


@app.delete("/api/v1/notes/{note_id}", status_code=204, dependencies=[Depends(require_auth)])
async def delete_note(note_id: str):
    coll = notes_collection()
    oid = object_id(note_id)
    res = await coll.delete_one({"_id": oid}) if oid else None
    if res is None or res.deleted_count == 0:
        raise HTTPException(status_code=404, detail=f"note {note_id} not found")
    log.info("note %s deleted", note_id)
    return Response(status_code=204)


if __name__ == "__main__":
    uvicorn.run("notes_service:app", host="0.0.0.0", port=int(os.getenv("PORT", 8083)), log_level="info")
