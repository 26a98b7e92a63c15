"""Tests for the AI doctor's user-data context."""

from bloodwork.schemas.user import Lifestyle, UserData
from bloodwork.services.context_builder import (
    MAX_CONTEXT_ENTRIES,
    SYSTEM_PROMPT,
    build_system_prompt,
    build_user_context,
)
from conftest import make_entry


class TestBuildUserContext:
    def test_no_entries(self, builtin_db):
        context = build_user_context(UserData(user_id="u1"), builtin_db.values)
        assert context == "Der Nutzer hat noch keine Blutwerte eingetragen."

    def test_header_with_gender(self, builtin_db):
        data = UserData(
            user_id="u1",
            display_name="Alice",
            gender="female",
            entries=[make_entry("e1", "2026-01-01", ("TSH", 2.0, "mIU/l"))],
        )
        assert build_user_context(data, builtin_db.values).startswith("Blutwerte von Alice (weiblich):")

    def test_annotations_and_reference_range(self, builtin_db):
        data = UserData(
            user_id="u1",
            gender="male",
            entries=[
                make_entry(
                    "e1",
                    "2026-01-01",
                    ("Hämoglobin", 12.0, "g/dl"),
                    ("TSH", 2.0, "mIU/l"),
                    ("Lipase", 30.0, "U/l"),
                    lab_name="Labor Nord",
                )
            ],
        )
        context = build_user_context(data, builtin_db.values)

        assert "**Eintrag vom 2026-01-01 (Labor Nord):**" in context
        assert "- Hämoglobin: 12 g/dl ⬇ UNTER Referenzbereich [Ref: 13.5–17.5]" in context
        assert "- TSH: 2 mIU/l ✓ Normal [Ref: 0.4–4]" in context
        assert "- Lipase: 30 U/l\n" in context

    def test_open_range_has_no_ref_annotation(self, builtin_db):
        data = UserData(user_id="u1", entries=[make_entry("e1", "2026-01-01", ("CRP", 9.0, "mg/l"))])
        context = build_user_context(data, builtin_db.values)
        assert "- CRP: 9 mg/l ⬆ ÜBER Referenzbereich\n" in context

    def test_diagnoses_and_medications(self, builtin_db):
        data = UserData(
            user_id="u1",
            diagnoses=["Hashimoto"],
            medications=["L-Thyroxin 50"],
            entries=[make_entry("e1", "2026-01-01", ("TSH", 2.0, "mIU/l"))],
        )
        context = build_user_context(data, builtin_db.values)
        assert "Bekannte Diagnosen: Hashimoto" in context
        assert "Medikamente: L-Thyroxin 50" in context

    def test_lifestyle(self, builtin_db):
        data = UserData(
            user_id="u1",
            lifestyle=Lifestyle(smoking="former", diet="vegan", sleep_hours=7.5),
            entries=[make_entry("e1", "2026-01-01", ("TSH", 2.0, "mIU/l"))],
        )
        context = build_user_context(data, builtin_db.values)
        assert "Lebensstil: Rauchen: ehemals, Ernährung: vegan, Schlaf: 7.5 h" in context

    def test_empty_lifestyle_omitted(self, builtin_db):
        data = UserData(
            user_id="u1",
            lifestyle=Lifestyle(),
            entries=[make_entry("e1", "2026-01-01", ("TSH", 2.0, "mIU/l"))],
        )
        assert "Lebensstil" not in build_user_context(data, builtin_db.values)

    def test_only_most_recent_entries(self, builtin_db):
        entries = [
            make_entry(f"e{i}", f"2026-01-{i + 1:02d}", ("TSH", 2.0, "mIU/l")) for i in range(8)
        ]
        context = build_user_context(UserData(user_id="u1", entries=entries), builtin_db.values)
        assert context.count("**Eintrag vom") == MAX_CONTEXT_ENTRIES
        assert "2026-01-08" in context
        assert "2026-01-03" not in context


class TestBuildSystemPrompt:
    def test_instructions_then_context(self, builtin_db):
        prompt = build_system_prompt(UserData(user_id="u1"), builtin_db.values)
        assert prompt.startswith(SYSTEM_PROMPT)
        assert prompt.endswith("Kontext - Aktuelle Nutzerdaten:\nDer Nutzer hat noch keine Blutwerte eingetragen.")
