#!/usr/bin/env python3
"""Load curated study notes from a JSON file into the store.

The file holds a list of notes, each with at least a topic and a content
breakdown. Notes are matched on topic, so running the script again updates
existing notes instead of duplicating them.

Usage:
    python scripts/seed_notes.py notes.json
    python scripts/seed_notes.py notes.json --status draft
    python scripts/seed_notes.py notes.json --generate-missing "Mauryan Empire" "Gupta Empire"
"""

import argparse
import json
import logging
import sys
from pathlib import Path

# Add parent directory to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))

from pydantic import ValidationError

from core.models import PreGeneratedNote
from core.ollama_client import OllamaClient
from core.store_adapter import AdapterError, Failed, Found, StoreAdapter
from main import Application

log = logging.getLogger("mindgains.seed_notes")


def load_notes(path: Path, status: str | None = None) -> list[PreGeneratedNote]:
    """Read and validate notes from a JSON file."""
    with open(path, encoding="utf-8") as f:
        data = json.load(f)
    if isinstance(data, dict):
        data = data.get("notes", [])

    notes = []
    for i, item in enumerate(data):
        try:
            note = PreGeneratedNote.model_validate(item)
        except ValidationError as e:
            print(f"Skipping entry {i}: {e}")
            continue
        if status:
            note = note.model_copy(update={"status": status})
        notes.append(note)
    return notes


def seed(adapter: StoreAdapter, notes: list[PreGeneratedNote]) -> int:
    """Upsert notes; returns how many were written."""
    written = 0
    for note in notes:
        try:
            note_id = adapter.upsert_note(note)
        except AdapterError as e:
            print(f"  ✗ {note.topic}: {e}")
            continue
        print(f"  ✓ {note.topic} ({note_id})")
        written += 1
    return written


def generate_missing(
    adapter: StoreAdapter, llm: OllamaClient, topics: list[str], category: str
) -> list[PreGeneratedNote]:
    """Generate drafts for topics that have no note yet, draft or published."""
    notes = []
    for topic in topics:
        lookup = adapter.fetch_note_by_topic(topic)
        if isinstance(lookup, Found):
            print(f"  - {topic}: already exists ({lookup.row.status})")
            continue
        if isinstance(lookup, Failed):
            print(f"  ✗ {topic}: {lookup.cause}")
            continue
        print(f"  … generating {topic}")
        breakdown = llm.generate_topic_breakdown(topic)
        if breakdown is None:
            print(f"  ✗ {topic}: generation failed")
            continue
        notes.append(
            PreGeneratedNote(topic=topic, category=category, content=breakdown, status="draft")
        )
    return notes


def main():
    """Main entry point for note seeding."""
    parser = argparse.ArgumentParser(description="Seed curated study notes")
    parser.add_argument("file", type=Path, nargs="?", help="JSON file with notes")
    parser.add_argument(
        "--status",
        choices=["draft", "published"],
        default=None,
        help="Override the status of every note in the file",
    )
    parser.add_argument(
        "--generate-missing",
        nargs="+",
        default=[],
        metavar="TOPIC",
        help="Generate draft notes with Ollama for topics that have no note yet",
    )
    parser.add_argument(
        "--category", default="general", help="Category for generated notes (default: general)"
    )
    parser.add_argument(
        "--data-dir",
        type=Path,
        default=None,
        help="Custom data directory (default: ~/.local/share/mindgains)",
    )
    args = parser.parse_args()

    if args.file is None and not args.generate_missing:
        parser.error("give a notes file, --generate-missing, or both")

    logging.basicConfig(level=logging.WARNING)

    app = Application(args.data_dir)
    try:
        notes = []
        if args.file is not None:
            notes = load_notes(args.file, args.status)
            print(f"Loaded {len(notes)} notes from {args.file}")
        if args.generate_missing:
            if not app.llm.check_server_available():
                print("Ollama server is not running, skipping generation")
            else:
                notes += generate_missing(
                    app.adapter, app.llm, args.generate_missing, args.category
                )

        written = seed(app.adapter, notes)
        print(f"\n✅ Seeded {written}/{len(notes)} notes")
        return 0 if written == len(notes) else 1
    finally:
        app.close()


if __name__ == "__main__":
    sys.exit(main())
