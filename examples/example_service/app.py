"""Tiny health endpoint for trying the balancer locally.

Run several copies on different addresses, point SERVICE_TARGETS at them with
``"check": {"type": "http", "port": 8080, "route": "/health"}`` and flip them
with the /simulate endpoints.
"""
from __future__ import annotations

import os
import random
import time

from fastapi import FastAPI, HTTPException
from fastapi.responses import RedirectResponse

NAME = os.getenv("NAME", "example")
FAIL_RATE = float(os.getenv("FAIL_RATE", "0"))  # 0..1

app = FastAPI(title=f"Example Service {NAME}")

APP_STATE = {"down": False, "delay_s": 0.0}


@app.get("/health")
def health() -> dict[str, str]:
    if APP_STATE["delay_s"] > 0:
        time.sleep(APP_STATE["delay_s"])
    if APP_STATE["down"] or (FAIL_RATE > 0 and random.random() < FAIL_RATE):
        raise HTTPException(status_code=503, detail="down")
    return {"status": "healthy", "name": NAME}


@app.get("/moved")
def moved() -> RedirectResponse:
    return RedirectResponse("/health", status_code=302)


@app.post("/simulate/down")
def simulate_down() -> dict[str, bool]:
    APP_STATE["down"] = True
    return {"down": True}


@app.post("/simulate/slow/{delay_ms}")
def simulate_slow(delay_ms: int) -> dict[str, float]:
    APP_STATE["delay_s"] = delay_ms / 1000.0
    return {"delay_s": APP_STATE["delay_s"]}


@app.post("/simulate/reset")
def simulate_reset() -> dict[str, bool]:
    APP_STATE["down"] = False
    APP_STATE["delay_s"] = 0.0
    return {"down": False}
