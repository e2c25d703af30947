from __future__ import annotations
from fastapi import FastAPI, HTTPException, Response
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel, ConfigDict
import logging, typing as t

from quiz_core.audit_export import to_json as grades_to_json, to_csv as grades_to_csv
from quiz_core.report_html import render_result_html
from .storage import (
    append_upload,
    list_results,
    list_uploads,
    load_result,
    save_result,
    valid_folder,
)

log = logging.getLogger(__name__)

app = FastAPI(title="Quiz Result Collector")

# artifacts post from file:// pages and arbitrary hosts
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_methods=["*"],
    allow_headers=["*"],
    allow_credentials=False,
)


# ---- Schemas ----
class ResultIn(BaseModel):
    model_config = ConfigDict(extra="allow")

    sessionId: str
    artifactId: str
    name: str | None = None
    answers: dict[str, t.Any] = {}
    outcomes: list[dict[str, t.Any]] = []
    score: float = 0.0
    maxScore: float = 0.0
    percentage: float | None = None
    tier: str | None = None
    startedAt: float | None = None
    endedAt: float | None = None
    attempt: int = 0
    status: str
    strikes: list[dict[str, t.Any]] = []
    manualReview: list[str] = []
    deviceId: str | None = None


class UploadIn(BaseModel):
    model_config = ConfigDict(extra="allow")


# ---- Helpers ----
def _folder(folder: str) -> str:
    if not valid_folder(folder):
        raise HTTPException(400, "invalid folder name")
    return folder


@app.get("/")
def root():
    return {"status": "ok", "service": "quiz-result-collector"}


@app.get("/health")
def health():
    return {"status": "ok"}


# ---- Results ----
@app.post("/results/{folder}")
def post_result(folder: str, payload: ResultIn):
    created = save_result(_folder(folder), payload.model_dump())
    log.info("result %s for folder %s (%s)", payload.sessionId, folder, "new" if created else "duplicate")
    return {"ok": True, "created": created, "sessionId": payload.sessionId}


@app.get("/results/{folder}")
def get_results(folder: str):
    return {"folder": folder, **grades_to_json(list_results(_folder(folder)))}


@app.get("/results/{folder}/grades.csv")
def get_grades_csv(folder: str):
    body = grades_to_csv(list_results(_folder(folder)))
    return Response(
        content=body,
        media_type="text/csv",
        headers={"Content-Disposition": f"attachment; filename=\"{folder}_grades.csv\""},
    )


@app.get("/results/{folder}/{session_id}")
def get_result(folder: str, session_id: str):
    result = load_result(_folder(folder), session_id)
    if not result:
        raise HTTPException(404, "result not found")
    return result


@app.get("/results/{folder}/{session_id}/html")
def get_result_html(folder: str, session_id: str):
    result = load_result(_folder(folder), session_id)
    if not result:
        raise HTTPException(404, "result not found")
    return {"html": render_result_html(result)}


# ---- Published tests and bank uploads ----
@app.post("/tests/{folder}")
def post_test(folder: str, payload: UploadIn):
    count = append_upload(_folder(folder), "tests", payload.model_dump())
    return {"ok": True, "count": count}


@app.get("/tests/{folder}")
def get_tests(folder: str):
    return {"folder": folder, "entries": list_uploads(_folder(folder), "tests")}


@app.post("/bank/{folder}")
def post_bank(folder: str, payload: UploadIn):
    count = append_upload(_folder(folder), "bank", payload.model_dump())
    return {"ok": True, "count": count}


@app.get("/bank/{folder}")
def get_bank(folder: str):
    return {"folder": folder, "entries": list_uploads(_folder(folder), "bank")}
