#!/usr/bin/env python3
"""
Smoke E2E — drives one trending post through the live pipeline.

Needs a running API with real RAPIDAPI_KEY, GEMINI_API_KEY and
GOOGLE_TRANSLATE_API_KEY configured, and the scheduler disabled so the
ticks below are the only consumers of the queue.

Env vars:
  BASE_URL       (default http://localhost:8000)
  SERVICE_TOKEN  (optional, sent as bearer to /queue/*)
  MAX_TICKS      (default 12)
"""
from __future__ import annotations

import json
import os
import sys
from urllib.error import HTTPError, URLError
from urllib.request import Request, urlopen

BASE_URL = os.environ.get("BASE_URL", "http://localhost:8000").rstrip("/")
SERVICE_TOKEN = os.environ.get("SERVICE_TOKEN", "")
MAX_TICKS = int(os.environ.get("MAX_TICKS", "12"))

# ── Helpers ──────────────────────────────────────────────────

class SmokeError(Exception):
    pass


def _headers() -> dict[str, str]:
    h = {"Content-Type": "application/json"}
    if SERVICE_TOKEN:
        h["Authorization"] = f"Bearer {SERVICE_TOKEN}"
    return h


def _req(method: str, path: str, body: dict | None = None) -> dict:
    url = f"{BASE_URL}{path}"
    data = json.dumps(body).encode() if body is not None else None
    req = Request(url, data=data, headers=_headers(), method=method)
    try:
        with urlopen(req, timeout=300) as resp:
            raw = resp.read().decode()
            return json.loads(raw) if raw else {}
    except HTTPError as e:
        raise SmokeError(f"{method} {path} → {e.code}: {e.read().decode()[:500]}")
    except URLError as e:
        raise SmokeError(f"{method} {path} → URLError: {e}")


def step(name: str):
    print(f"\n{'='*60}")
    print(f"  STEP: {name}")
    print(f"{'='*60}")


def ok(msg: str):
    print(f"  ✅ {msg}")


def fail(msg: str):
    print(f"  ❌ {msg}")
    raise SmokeError(msg)


# ── Steps ────────────────────────────────────────────────────

def step1_ping():
    step("1. Ping")
    if _req("GET", "/ping").get("status") != "ok":
        fail("API not healthy")
    ok("API up")


def step2_ingest() -> str:
    step("2. Ingest one trending post")
    report = _req("POST", "/ingest", {"limit": 1})
    queued = report.get("candidates", [])
    if not queued:
        fail(f"Nothing queued: {report}")
    external_id = queued[0]["externalId"]
    ok(f"Queued {external_id}")
    return external_id


def step3_drain_queue():
    step("3. Tick the queue until empty")
    for i in range(MAX_TICKS):
        outcome = _req("POST", "/queue/tick")
        if outcome.get("message") == "No pending jobs":
            ok(f"Queue drained after {i} tick(s)")
            return
        print(f"  · {outcome.get('jobType')} job {outcome.get('jobId')}: {outcome.get('status')}")
        if outcome.get("status") == "failed":
            fail(f"Job failed: {outcome.get('error')}")
    fail(f"Queue still busy after {MAX_TICKS} ticks")


def step4_check(external_id: str):
    step("4. Verify candidate")
    c = _req("GET", f"/candidates/{external_id}")
    if c.get("processingStatus") != "completed":
        fail(f"processingStatus={c.get('processingStatus')} error={c.get('processingError')}")
    if not (c.get("videoUrl") or c.get("imageUrls")):
        fail("No re-hosted media")
    if not c.get("geminiAnalysis"):
        fail("No analysis stored")
    if not c.get("analysisEn"):
        fail("No English translation stored")
    ok(f"score={c.get('adaptationScore')} adaptable={c.get('isAdaptable')}")


def main():
    print(f"Smoke E2E against {BASE_URL}")
    try:
        step1_ping()
        external_id = step2_ingest()
        step3_drain_queue()
        step4_check(external_id)
    except SmokeError as e:
        print(f"\n{'='*60}")
        print(f"  ❌ FAIL: {e}")
        print(f"{'='*60}\n")
        sys.exit(1)
    except KeyboardInterrupt:
        print("\n\n  ⏹ Interrupted")
        sys.exit(130)
    print("\n  ✅ PASS")


if __name__ == "__main__":
    main()
