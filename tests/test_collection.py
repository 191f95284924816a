"""Collection database rows written for a package."""
from __future__ import annotations

import json
import sqlite3
from dataclasses import replace

import pytest

from apkg_builder.collection import Timestamps, write_collection
from apkg_builder.config import BuilderConfig
from apkg_builder.ids import derive_ids, deck_id, model_id
from apkg_builder.markup import field_checksum
from apkg_builder.types import DeckDefinition, ModelDefinition, NoteDefinition, PackageDefinition, TemplateDefinition

TS = Timestamps(crt=1_700_000_000, mod=1_700_000_500)


@pytest.fixture
def conn():
    c = sqlite3.connect(":memory:")
    yield c
    c.close()


def write(conn: sqlite3.Connection, definition: PackageDefinition, cfg: BuilderConfig | None = None) -> int:
    return write_collection(conn, derive_ids(definition), TS, cfg or BuilderConfig())


class TestSchema:
    def test_tables_present(self, conn, spanish_definition):
        write(conn, spanish_definition)
        tables = {r[0] for r in conn.execute("SELECT name FROM sqlite_master WHERE type='table'")}
        assert tables == {"col", "notes", "cards", "revlog", "graves"}

    def test_column_order(self, conn, spanish_definition):
        write(conn, spanish_definition)
        cols = [r[1] for r in conn.execute("PRAGMA table_info(notes)")]
        assert cols == ["id", "guid", "mid", "mod", "usn", "tags", "flds", "sfld", "csum", "flags", "data"]
        cols = [r[1] for r in conn.execute("PRAGMA table_info(cards)")]
        assert cols[:9] == ["id", "nid", "did", "ord", "mod", "usn", "type", "queue", "due"]

    def test_history_tables_empty(self, conn, spanish_definition):
        write(conn, spanish_definition)
        assert conn.execute("SELECT count(*) FROM revlog").fetchone() == (0,)
        assert conn.execute("SELECT count(*) FROM graves").fetchone() == (0,)


class TestColRow:
    def test_single_row(self, conn, spanish_definition):
        write(conn, spanish_definition)
        rows = conn.execute("SELECT id, crt, mod, scm, ver, tags FROM col").fetchall()
        assert rows == [(1, TS.crt, TS.mod * 1000, TS.mod * 1000, 11, "{}")]

    def test_catalogs(self, conn, spanish_definition):
        write(conn, spanish_definition)
        models_raw, decks_raw, conf_raw = conn.execute("SELECT models, decks, conf FROM col").fetchone()
        models = json.loads(models_raw)
        decks = json.loads(decks_raw)

        m = models[str(model_id("Basic"))]
        assert m["name"] == "Basic"
        assert m["type"] == 0
        assert [f["name"] for f in m["flds"]] == ["Front", "Back"]
        assert m["tmpls"][0]["qfmt"] == "{{Front}}"
        assert m["tmpls"][0]["afmt"] == "{{FrontSide}}<hr id=answer>{{Back}}"
        assert m["did"] == deck_id("Spanish")
        assert m["req"] == [[0, "any", [0]]]
        assert ".card" in m["css"]

        assert set(decks) == {"1", str(deck_id("Spanish"))}
        assert decks[str(deck_id("Spanish"))]["desc"] == "Core words"
        assert json.loads(conf_raw)["nextPos"] == 2

    def test_custom_css_and_font(self, conn, spanish_definition, basic_model):
        d = replace(spanish_definition, models=(replace(basic_model, css=".card { color: red; }"),))
        write(conn, d, BuilderConfig(field_font="Liberation Sans", field_size=24))
        m = json.loads(conn.execute("SELECT models FROM col").fetchone()[0])[str(model_id("Basic"))]
        assert m["css"] == ".card { color: red; }"
        assert m["flds"][0]["font"] == "Liberation Sans"
        assert m["flds"][0]["size"] == 24


class TestNotesAndCards:
    def test_note_row(self, conn, spanish_definition):
        write(conn, spanish_definition)
        pkg = derive_ids(spanish_definition)
        row = conn.execute("SELECT id, guid, mid, mod, usn, tags, flds, sfld, csum, flags, data FROM notes").fetchone()
        assert row == (
            pkg.notes[0].id,
            pkg.notes[0].guid,
            model_id("Basic"),
            TS.mod,
            -1,
            " greeting ",
            "hola\x1fhello",
            "hola",
            field_checksum("hola"),
            0,
            "",
        )

    def test_card_row_is_new_and_unscheduled(self, conn, spanish_definition):
        write(conn, spanish_definition)
        pkg = derive_ids(spanish_definition)
        row = conn.execute(
            "SELECT id, nid, did, ord, type, queue, due, ivl, factor, reps, lapses, left, odue, odid FROM cards"
        ).fetchone()
        note = pkg.notes[0]
        assert row == (note.cards[0].id, note.id, deck_id("Spanish"), 0, 0, 0, 1, 0, 0, 0, 0, 0, 0, 0)

    def test_tags_and_sort_field(self, conn, basic_model):
        model = replace(basic_model, sort_field="Back")
        d = PackageDefinition(
            name="x",
            models=(model,),
            decks=(DeckDefinition("D"),),
            notes=(
                NoteDefinition(deck="D", model="Basic", fields={"Front": "q", "Back": "<b>Bold</b> answer"}, tags=("a", "b")),
                NoteDefinition(deck="D", model="Basic", fields={"Front": "q2", "Back": "a2"}),
            ),
        )
        write(conn, d)
        rows = conn.execute("SELECT tags, sfld, csum FROM notes ORDER BY sfld").fetchall()
        assert rows[0] == (" a b ", "Bold answer", field_checksum("<b>Bold</b> answer"))
        assert rows[1][0] == ""
        sortf = json.loads(conn.execute("SELECT models FROM col").fetchone()[0])[str(model_id("Basic"))]["sortf"]
        assert sortf == 1

    def test_due_follows_note_order(self, conn, spanish_definition):
        notes = tuple(
            NoteDefinition(deck="Spanish", model="Basic", fields={"Front": f"w{i}", "Back": f"m{i}"}) for i in range(3)
        )
        write(conn, replace(spanish_definition, notes=notes))
        dues = [r[0] for r in conn.execute("SELECT due FROM cards ORDER BY due")]
        assert dues == [1, 2, 3]

    def test_card_per_template(self, conn, spanish_definition, basic_model):
        model = replace(basic_model, templates=basic_model.templates + (TemplateDefinition("Reverse", "{{Back}}", "{{Front}}"),))
        assert write(conn, replace(spanish_definition, models=(model,))) == 2
        assert [r[0] for r in conn.execute("SELECT ord FROM cards ORDER BY ord")] == [0, 1]

    def test_cloze_fan_out(self, conn, cloze_model):
        d = PackageDefinition(
            name="Bio",
            models=(cloze_model,),
            decks=(DeckDefinition("Bio"),),
            notes=(
                NoteDefinition(
                    deck="Bio",
                    model="Cloze",
                    fields={"Text": "The {{c1::mitochondria}} is the {{c2::powerhouse}}", "Extra": "cell biology"},
                ),
            ),
        )
        assert write(conn, d) == 2
        assert [r[0] for r in conn.execute("SELECT ord FROM cards ORDER BY ord")] == [0, 1]
        m = json.loads(conn.execute("SELECT models FROM col").fetchone()[0])[str(model_id("Cloze"))]
        assert m["type"] == 1
        assert m["req"] == [[0, "any", [0]]]

    def test_cloze_ordinals_follow_deletion_numbers(self, conn, cloze_model):
        d = PackageDefinition(
            name="Bio",
            models=(cloze_model,),
            decks=(DeckDefinition("Bio"),),
            notes=(
                NoteDefinition(
                    deck="Bio",
                    model="Cloze",
                    fields={"Text": "{{c1::a}} {{c3::b}} {{c1::c}}", "Extra": ""},
                ),
            ),
        )
        assert write(conn, d) == 2
        assert [r[0] for r in conn.execute("SELECT ord FROM cards ORDER BY ord")] == [0, 2]

    def test_cloze_markers_outside_text_field_make_no_cards(self, conn, cloze_model):
        d = PackageDefinition(
            name="Bio",
            models=(cloze_model,),
            decks=(DeckDefinition("Bio"),),
            notes=(
                NoteDefinition(deck="Bio", model="Cloze", fields={"Text": "The {{c1::cell}}", "Extra": "see {{c2::ref}}"}),
            ),
        )
        assert write(conn, d) == 1
        assert conn.execute("SELECT ord FROM cards").fetchall() == [(0,)]

    def test_markdown_fields_rendered(self, conn, spanish_definition, basic_model):
        model = replace(basic_model, markdown_fields=("Back",))
        note = NoteDefinition(deck="Spanish", model="Basic", fields={"Front": "**hola**", "Back": "**hello**"})
        write(conn, replace(spanish_definition, models=(model,), notes=(note,)))
        flds = conn.execute("SELECT flds FROM notes").fetchone()[0]
        front, back = flds.split("\x1f")
        assert front == "**hola**"
        assert back == "<strong>hello</strong>"

    def test_templates_stored_verbatim(self, conn, spanish_definition):
        model = ModelDefinition(
            name="Basic",
            fields=("Front", "Back"),
            templates=(TemplateDefinition("T", "{{#Front}}{{Front}}{{/Front}}", "{{Back}}<script>x</script>"),),
        )
        write(conn, replace(spanish_definition, models=(model,)))
        m = json.loads(conn.execute("SELECT models FROM col").fetchone()[0])[str(model_id("Basic"))]
        assert m["tmpls"][0]["qfmt"] == "{{#Front}}{{Front}}{{/Front}}"
        assert m["tmpls"][0]["afmt"] == "{{Back}}<script>x</script>"
