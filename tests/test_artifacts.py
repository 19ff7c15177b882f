"""Tests for artifact documents: generation, versions, diffs and client assembly."""

from __future__ import annotations

import pytest

from agentchat.application.artifacts import (
    DocumentAssembler,
    DocumentService,
    VersionCursor,
    build_diff_view,
    default_handlers,
)
from agentchat.application.artifacts.handlers import CODE_PROMPT, REACT_PROMPT, SHEET_PROMPT
from agentchat.application.exceptions import (
    ChatAccessDeniedError,
    DocumentNotFoundError,
    UnsupportedDocumentKindError,
    VersionNotFoundError,
)
from agentchat.domain.models import DocumentVersion
from agentchat.infrastructure.document_repository import DocumentRepository
from agentchat.streaming.events import DataEvent
from agentchat.tools.base import ToolContext
from fakes import FakeArtifactGenerator, user_message


@pytest.fixture()
def repo(tmp_path):
    repository = DocumentRepository(tmp_path / "docs.sqlite")
    repository.connect()
    yield repository
    repository.close()


@pytest.fixture()
def generator() -> FakeArtifactGenerator:
    return FakeArtifactGenerator()


@pytest.fixture()
def service(repo: DocumentRepository, generator: FakeArtifactGenerator) -> DocumentService:
    return DocumentService(repo, default_handlers(generator))


@pytest.fixture()
def ctx() -> ToolContext:
    return ToolContext(user_id="u1", chat_id="c1", messages=[user_message("Write me something")])


def _stream(ctx: ToolContext) -> list[tuple[str, object]]:
    return [(e.data_type, e.content) for e in ctx.writer.drain()]


def _version(index: int, content: str) -> DocumentVersion:
    return DocumentVersion(
        document_id="d1",
        version_index=index,
        title="Notes",
        kind="text",
        content=content,
        user_id="u1",
        created_at="2025-01-01 00:00:00",
    )


class TestHandlerPrompts:
    @pytest.mark.parametrize(
        ("kind", "system_prompt"),
        [("code", CODE_PROMPT), ("sheet", SHEET_PROMPT), ("react", REACT_PROMPT)],
    )
    async def test_each_kind_creates_with_its_own_prompt(self, kind, system_prompt, generator, ctx: ToolContext):
        handler = default_handlers(generator)[kind]
        await handler.create("Widget", ctx.writer, ctx.messages)
        assert generator.prompts[0][0] == system_prompt


class TestCreateDocument:
    async def test_text_document_streams_increments(self, service: DocumentService, repo, ctx: ToolContext):
        result = await service.create_document("Essay", "text", ctx)

        events = _stream(ctx)
        assert [t for t, _ in events[:4]] == ["kind", "id", "title", "clear"]
        assert events[1][1] == result["id"]
        assert [c for t, c in events if t == "text-delta"] == ["Hello ", "world"]
        assert events[-1] == ("finish", "")

        (version,) = repo.get_document_versions(result["id"])
        assert version.content == "Hello world"
        assert version.user_id == "u1"
        assert result["kind"] == "text"

    async def test_code_document_streams_snapshots(self, service: DocumentService, repo, ctx: ToolContext):
        result = await service.create_document("Script", "code", ctx)

        deltas = [c for t, c in _stream(ctx) if t == "code-delta"]
        assert deltas == ["print(", "print(1)"]
        assert repo.get_latest_document(result["id"]).content == "print(1)"

    async def test_sheet_ends_on_the_final_snapshot(self, repo, ctx: ToolContext):
        generator = FakeArtifactGenerator(snapshots=[{"csv": "a,b\n1"}, {"csv": "a,b\n1,2"}])
        service = DocumentService(repo, default_handlers(generator))
        await service.create_document("Numbers", "sheet", ctx)

        deltas = [c for t, c in _stream(ctx) if t == "sheet-delta"]
        assert deltas[-1] == "a,b\n1,2"
        assert deltas.count("a,b\n1,2") == 2

    async def test_react_document_reports_component_name(self, repo, ctx: ToolContext):
        generator = FakeArtifactGenerator(
            snapshots=[{"component_name": "Counter"}, {"component_name": "Counter", "code": "function Counter() {}"}]
        )
        service = DocumentService(repo, default_handlers(generator))
        await service.create_document("Counter", "react", ctx)

        events = _stream(ctx)
        assert ("metadata-update", {"componentName": "Counter"}) in events
        assert ("react-delta", "function Counter() {}") in events
        system, prompt = generator.prompts[0]
        assert "Write me something" in prompt

    async def test_unknown_kind_is_rejected(self, service: DocumentService, ctx: ToolContext):
        with pytest.raises(UnsupportedDocumentKindError):
            await service.create_document("x", "video", ctx)


class TestUpdateDocument:
    async def test_update_appends_a_version(self, service: DocumentService, repo, generator, ctx: ToolContext):
        created = await service.create_document("Essay", "text", ctx)
        ctx.writer.drain()
        generator.text_chunks = ["Better ", "essay"]

        await service.update_document(created["id"], "Make it better", ctx)

        events = _stream(ctx)
        assert events[:4] == [("kind", "text"), ("id", created["id"]), ("title", "Essay"), ("clear", "Essay")]
        assert events[-1] == ("finish", "")
        assert [v.content for v in repo.get_document_versions(created["id"])] == ["Hello world", "Better essay"]
        system, prompt = generator.prompts[-1]
        assert "Hello world" in system
        assert prompt == "Make it better"

    async def test_update_of_someone_elses_document(self, service: DocumentService, repo, ctx: ToolContext):
        repo.save_document("d1", "Theirs", "text", "x", "other-user")
        with pytest.raises(ChatAccessDeniedError):
            await service.update_document("d1", "change", ctx)

    async def test_update_of_missing_document(self, service: DocumentService, ctx: ToolContext):
        with pytest.raises(DocumentNotFoundError):
            await service.update_document("nope", "change", ctx)


class TestManualSave:
    def test_save_version_appends(self, service: DocumentService, repo):
        repo.save_document("d1", "Notes", "text", "v0", "u1")
        version = service.save_version("d1", "v1", "u1")
        assert version.version_index == 1
        assert version.kind == "text"

    def test_save_creates_with_title_and_kind(self, service: DocumentService):
        version = service.save_version("new-doc", "body", "u1", title="Fresh", kind="code")
        assert version.version_index == 0
        assert version.kind == "code"

    def test_save_without_kind_needs_an_existing_document(self, service: DocumentService):
        with pytest.raises(DocumentNotFoundError):
            service.save_version("new-doc", "body", "u1")

    def test_save_to_another_users_document(self, service: DocumentService, repo):
        repo.save_document("d1", "Notes", "text", "v0", "u1")
        with pytest.raises(ChatAccessDeniedError):
            service.save_version("d1", "hijack", "u2")


class TestDiff:
    def test_diff_against_previous_version(self):
        versions = [_version(0, "one\ntwo\n"), _version(1, "one\nthree\n")]
        view = build_diff_view(versions, 1)
        assert (view.old_version, view.new_version) == (0, 1)
        assert "-two\n" in view.unified_diff
        assert "+three\n" in view.unified_diff

    def test_first_version_has_nothing_to_compare(self):
        with pytest.raises(VersionNotFoundError):
            build_diff_view([_version(0, "x")], 0)

    def test_out_of_range(self):
        with pytest.raises(VersionNotFoundError):
            build_diff_view([_version(0, "x"), _version(1, "y")], 5)

    def test_no_versions(self):
        with pytest.raises(DocumentNotFoundError):
            build_diff_view([], 0)

    def test_service_diff_checks_ownership(self, service: DocumentService, repo):
        repo.save_document("d1", "Notes", "text", "a", "u1")
        repo.save_document("d1", "Notes", "text", "b", "u1")
        assert service.diff("d1", 1, "u1").new_content == "b"
        with pytest.raises(ChatAccessDeniedError):
            service.diff("d1", 1, "u2")


class TestVersionCursor:
    def test_starts_on_latest_and_stays_in_bounds(self):
        cursor = VersionCursor(count=3)
        assert cursor.index == 2
        assert cursor.next() == 2
        assert [cursor.previous(), cursor.previous(), cursor.previous()] == [1, 0, 0]

    def test_grow_follows_only_when_viewing_latest(self):
        cursor = VersionCursor(count=2)
        cursor.grow(3)
        assert cursor.index == 2
        cursor.previous()
        cursor.grow(4)
        assert cursor.index == 1
        assert not cursor.is_latest

    def test_requires_a_version(self):
        with pytest.raises(DocumentNotFoundError):
            VersionCursor(count=0)


class TestDocumentAssembler:
    def test_text_deltas_append_and_snapshots_replace(self):
        assembler = DocumentAssembler()
        for data_type, content in [
            ("kind", "text"),
            ("id", "d1"),
            ("title", "Essay"),
            ("clear", ""),
            ("text-delta", "Hello "),
            ("text-delta", "world"),
            ("finish", ""),
            ("kind", "code"),
            ("id", "d2"),
            ("code-delta", "print("),
            ("code-delta", "print(1)"),
        ]:
            assembler.apply(DataEvent(data_type=data_type, content=content))

        first, second = assembler.documents
        assert (first.document_id, first.content, first.status) == ("d1", "Hello world", "idle")
        assert (second.document_id, second.content, second.status) == ("d2", "print(1)", "streaming")

    async def test_update_stream_yields_the_replaced_document(
        self, service: DocumentService, generator, ctx: ToolContext
    ):
        created = await service.create_document("Essay", "text", ctx)
        ctx.writer.drain()
        generator.text_chunks = ["Better ", "essay"]

        await service.update_document(created["id"], "Make it better", ctx)

        assembler = DocumentAssembler()
        for event in ctx.writer.drain():
            assembler.apply(event)
        (document,) = assembler.documents
        assert (document.document_id, document.kind, document.title) == (created["id"], "text", "Essay")
        assert (document.content, document.status) == ("Better essay", "idle")

    def test_update_in_the_same_turn_replaces_the_created_copy(self):
        assembler = DocumentAssembler()
        for data_type, content in [
            ("kind", "text"),
            ("id", "d1"),
            ("text-delta", "draft"),
            ("finish", ""),
            ("kind", "text"),
            ("id", "d1"),
            ("clear", "Essay"),
            ("text-delta", "final"),
            ("finish", ""),
        ]:
            assembler.apply(DataEvent(data_type=data_type, content=content))

        (document,) = assembler.documents
        assert document.content == "final"

    def test_headerless_content_is_still_reported(self):
        assembler = DocumentAssembler()
        assembler.apply(DataEvent(data_type="clear", content=""))
        assembler.apply(DataEvent(data_type="text-delta", content="orphan"))
        (document,) = assembler.documents
        assert (document.document_id, document.content) == (None, "orphan")

    def test_unrelated_data_is_ignored(self):
        assembler = DocumentAssembler()
        assert assembler.apply(DataEvent(data_type="chat-metadata", content={})) is False
        assert assembler.ignored == ["chat-metadata"]
        assert assembler.documents == []
