import os
from urllib.parse import quote
import requests
from typing import Any, Dict, List, Optional, Tuple
import logging

logging.basicConfig(level=logging.INFO)
log = logging.getLogger("notes-client")

NOTES_PATH = "/api/v1/notes"


class NotesClient:
    """HTTP client for the notes service.

    Transport errors are retried up to `retries` extra times; non-2xx
    answers are returned as an error dict instead of raising.
    """

    def __init__(self, base_url: str, timeout: int=8, retries: int=2,
                 auth: Optional[Tuple[str, str]]=None):
        self.base = base_url.rstrip("/")
        self.timeout = timeout
        self.retries = retries
        self.auth = auth

    def _request(self, method: str, path: str, **kwargs) -> requests.Response:
        last_exc = None
        for attempt in range(self.retries + 1):
            try:
                return requests.request(method, f"{self.base}{path}", auth=self.auth,
                                        timeout=self.timeout, **kwargs)
            except (requests.exceptions.ConnectionError, requests.exceptions.Timeout) as e:
                log.warning("notes %s %s attempt %d failed: %s", method, path, attempt + 1, e)
                last_exc = e
        raise last_exc

    def _json(self, method: str, path: str, **kwargs):
        r = self._request(method, path, **kwargs)
        if 200 <= r.status_code < 300:
            return r.json()
        log.warning("notes %s %s non-2xx %s: %s", method, path, r.status_code, r.text)
        return {"error": "request_failed", "status": r.status_code, "body": r.text}

    def health(self):
        return self._request("GET", "/notes/health").json()

    def all_notes(self) -> List[Dict[str, Any]]:
        return self._json("GET", NOTES_PATH)

    def get_note(self, note_id: str) -> Optional[Dict[str, Any]]:
        r = self._request("GET", f"{NOTES_PATH}/{quote(note_id, safe='')}")
        if r.status_code == 404:
            return None
        if r.status_code != 200:
            log.warning("notes GET %s non-200 %s: %s", note_id, r.status_code, r.text)
            return {"error": "request_failed", "status": r.status_code, "body": r.text}
        return r.json()

    def notes_for_patient(self, pat_id: int):
        return self._json("GET", f"{NOTES_PATH}/patient/{pat_id}")

    def notes_for_patient_name(self, patient: str):
        return self._json("GET", f"{NOTES_PATH}/patient/name/{quote(patient)}")

    def create_note(self, pat_id: int, patient: str, note: str):
        payload = {"patId": pat_id, "patient": patient, "note": note}
        return self._json("POST", NOTES_PATH, json=payload)

    def update_note(self, note_id: str, pat_id: int, patient: str, note: str):
        payload = {"patId": pat_id, "patient": patient, "note": note}
        return self._json("PUT", f"{NOTES_PATH}/{quote(note_id, safe='')}", json=payload)

    def delete_note(self, note_id: str) -> bool:
        r = self._request("DELETE", f"{NOTES_PATH}/{quote(note_id, safe='')}")
        if r.status_code == 204:
            return True
        log.warning("notes DELETE %s non-204 %s: %s", note_id, r.status_code, r.text)
        return False


if __name__ == "__main__":
    client = NotesClient(os.getenv("NOTES_SERVICE_URL", "http://localhost:8083"))
    print("health:", client.health())
    print("notes for patient 3:", client.notes_for_patient(3))
