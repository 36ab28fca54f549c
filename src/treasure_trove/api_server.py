#!/usr/bin/env python3
"""
FastAPI server for treasure-trove.

Serves the "speak or list your treasures" form, stores what was extracted
from it, and exposes a small JSON API for extraction, stored items, label
previews and printing.
"""
from __future__ import annotations

import html
import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Form, HTTPException
from fastapi.responses import HTMLResponse, PlainTextResponse
from pydantic import BaseModel

from . import extraction, labels, printing
from .config import Config
from .errors import InvalidPayloadError, PrintUnavailableError
from .storage import ItemStore, JsonItemStore, item_view, store_candidates

logger = logging.getLogger(__name__)

# Set up on startup; tests may assign their own
config: Optional[Config] = None
store: Optional[ItemStore] = None
print_service: Optional[printing.PrintService] = None


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Load configuration and the item store on startup."""
    global config, store, print_service

    if config is None:
        config = Config()
    if store is None:
        store = JsonItemStore(config.store_file)
        logger.info("Using item store %s", config.store_file or "(in memory)")
    if print_service is None:
        print_service = printing.service_from_config(config)

    yield


app = FastAPI(title="Treasure Trove", lifespan=lifespan)


class ExtractRequest(BaseModel):
    """Free text to extract items from."""
    text: str


class AddItemsRequest(BaseModel):
    """Free text plus the bin and location to store the items in."""
    text: str
    container: Optional[str] = None
    location: Optional[str] = None


class PrintRequest(BaseModel):
    """Optional print queue override."""
    queue: Optional[str] = None


def _config() -> Config:
    global config
    if config is None:
        config = Config()
    return config


def _store() -> ItemStore:
    if store is None:
        raise HTTPException(status_code=503, detail="Item store not loaded")
    return store


def normalize_optional(value: Optional[str]) -> Optional[str]:
    """Return value stripped, or None if it is missing or blank."""
    if value is None:
        return None
    value = value.strip()
    return value or None


def choose_bin(bin_select: Optional[str], bin_new: Optional[str]) -> Optional[str]:
    """Pick the bin from the form: a typed new bin beats the selected one.

    A selection of "" or "-" means no bin.
    """
    new = normalize_optional(bin_new)
    if new:
        return new
    selected = normalize_optional(bin_select)
    if selected and selected != "-":
        return selected
    return None


def render_form(known_bins: list[str]) -> str:
    options = ['<option value="">-- None --</option>']
    for name in known_bins:
        escaped = html.escape(name)
        options.append(f'<option value="{escaped}">{escaped}</option>')

    return f"""<!doctype html>
<html lang="en">
  <head>
    <meta charset="utf-8">
    <title>Treasure Trove</title>
    <meta name="viewport" content="width=device-width, initial-scale=1.0">
  </head>
  <body style="font-family: serif; padding: 1rem; justify-self: center; max-width: 600px;">
    <h1>Treasure Trove</h1>
    <p style="font-size: 0.8rem; color: gray; font-style: italic;">A household ledger for tools and treasures.</p>
    <form method="post" action="/submit">
      <label for="text">Speak or list your treasures:</label><br>
      <textarea id="text" name="text" rows="8" cols="40" style="width: 100%;"></textarea><br><br>
      <label for="bin_select">Select Bin (optional):</label><br>
      <select id="bin_select" name="bin_select" style="width: 100%;">{"".join(options)}</select><br><br>
      <label for="bin_new">New Bin (if Other or new):</label><br>
      <input id="bin_new" name="bin_new" type="text" style="width: 100%;" /><br><br>
      <label for="location">Location (optional):</label><br>
      <input id="location" name="location" type="text" style="width: 100%;" /><br><br>
      <button type="submit">Submit</button>
    </form>
  </body>
</html>"""


def render_confirmation(items: list[dict]) -> str:
    lines = []
    for item in items:
        line = f"{item['quantity']} × {html.escape(item['name'])}"
        if item.get("container"):
            line += f" — Bin: {html.escape(item['container'])}"
        if item.get("location"):
            line += f" — Location: {html.escape(item['location'])}"
        lines.append(f"<li>{line}</li>")

    return (
        '<!doctype html><html><head><meta charset="utf-8"><title>Inventory Saved</title>'
        '<meta name="viewport" content="width=device-width, initial-scale=1.0"></head>'
        '<body style="font-family: sans-serif; padding: 1rem;">'
        f"<h1>Parsed Items</h1><ul>{''.join(lines)}</ul>"
        '<p><a href="/">Back</a></p></body></html>'
    )


@app.get("/", response_class=HTMLResponse)
def show_form() -> str:
    return render_form([c.name for c in _store().list_containers()])


@app.post("/submit", response_class=HTMLResponse)
def handle_submit(
    text: str = Form(""),
    bin_select: Optional[str] = Form(None),
    bin_new: Optional[str] = Form(None),
    location: Optional[str] = Form(None),
) -> str:
    """Extract items from the form text and store them."""
    item_store = _store()
    candidates = extraction.extract(text, _config())
    items = store_candidates(
        item_store,
        candidates,
        container=choose_bin(bin_select, bin_new),
        location=normalize_optional(location),
    )
    return render_confirmation([item_view(item_store, item) for item in items])


@app.post("/api/extract")
def api_extract(request: ExtractRequest) -> dict:
    """Extract items without storing them."""
    candidates = extraction.extract(request.text, _config())
    return {"items": [candidate.to_dict() for candidate in candidates]}


@app.post("/api/items")
def api_add_items(request: AddItemsRequest) -> dict:
    """Extract items from text and store them."""
    item_store = _store()
    candidates = extraction.extract(request.text, _config())
    items = store_candidates(
        item_store,
        candidates,
        container=normalize_optional(request.container),
        location=normalize_optional(request.location),
    )
    return {"items": [item_view(item_store, item) for item in items]}


@app.get("/api/items")
def api_list_items() -> dict:
    item_store = _store()
    return {"items": [item_view(item_store, item) for item in item_store.list_items()]}


def _get_item(item_id: int):
    try:
        return _store().get(item_id)
    except KeyError:
        raise HTTPException(status_code=404, detail=f"Item {item_id} not found") from None


@app.get("/api/items/{item_id}/label", response_class=PlainTextResponse)
def api_item_label(item_id: int) -> str:
    """Return the ZPL label for an item without printing it."""
    item = _get_item(item_id)
    item_store = _store()
    return labels.compose(
        item,
        item_store.container_name(item.container_id),
        item_store.location_name(item.location_id),
        labels.LabelLayout.from_config(_config()),
    )


@app.post("/api/items/{item_id}/print")
def api_print_item(item_id: int, request: Optional[PrintRequest] = None) -> dict:
    """Print an item's label on the configured printer."""
    item = _get_item(item_id)
    item_store = _store()
    cfg = _config()
    try:
        job = printing.print_item(
            item,
            cfg,
            container_name=item_store.container_name(item.container_id),
            location_name=item_store.location_name(item.location_id),
            service=print_service,
            queue=request.queue if request else None,
        )
    except PrintUnavailableError as e:
        raise HTTPException(status_code=503, detail=f"Printer offline, retry later: {e}") from e
    except InvalidPayloadError as e:
        logger.error("Invalid label payload for item %s: %s", item_id, e)
        raise HTTPException(status_code=500, detail=f"Internal error, please report it: {e}") from e

    return {"success": True, "job_id": job.job_id, "attempts": job.attempt_count}


@app.get("/health")
def health() -> dict:
    """Health check endpoint."""
    cfg = _config()
    return {
        "status": "ok",
        "store_loaded": store is not None,
        "item_count": len(store.list_items()) if store is not None else 0,
        "llm_enabled": cfg.llm_enabled,
        "printer_queue": cfg.printer_queue,
    }
