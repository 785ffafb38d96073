"""End-to-end pipeline tests: navigation and upload events through to the sink."""

import base64

import pytest

from jobtrack.config_loader import RuntimeSettings
from jobtrack.models import NavigationEvent, UploadEvent
from jobtrack.orchestrator import NavigationOutcome, UploadOutcome

GREENHOUSE = "https://boards.greenhouse.io/acme/jobs/123456"
LEVER_APPLY = "https://jobs.lever.co/acme/0a1b2c3d-1111-2222-3333-444455556666/apply"
PDF = "application/pdf"


def nav(url=GREENHOUSE, title="Software Engineer | Acme"):
    return NavigationEvent(raw_target=url, display_title=title)


def upload(
    file_name="resume.pdf",
    mime_type=PDF,
    byte_size=2048,
    url=LEVER_APPLY,
    title="Software Engineer - Acme",
):
    return UploadEvent(
        file_name=file_name,
        mime_type=mime_type,
        byte_size=byte_size,
        encoded_content=base64.b64encode(b"%PDF-1.4 resume").decode(),
        origin_target=url,
        origin_title=title,
    )


class TestNavigation:
    @pytest.mark.asyncio
    async def test_greenhouse_posting_is_delivered_as_viewed(self, make_pipeline, recorder):
        p = make_pipeline(policy="detail_view")
        assert await p.orchestrator.on_navigation(nav()) is NavigationOutcome.DELIVERED

        (body,) = recorder.payloads
        assert body["canonical_key"] == "greenhouse:acme:123456"
        assert body["company"] == "Acme"
        assert body["role_title"] == "Software Engineer"
        assert body["source"] == "Greenhouse"
        assert body["status"] == "Viewed"
        assert body["jd_url"] == GREENHOUSE
        assert body["resume_version"] == "UNKNOWN"
        assert body["app_id"]
        assert body["timestamp"]

    @pytest.mark.asyncio
    async def test_apply_page_is_delivered_as_applied(self, make_pipeline, recorder):
        p = make_pipeline(policy="apply_intent")
        outcome = await p.orchestrator.on_navigation(nav(LEVER_APPLY, "Software Engineer - Acme"))
        assert outcome is NavigationOutcome.DELIVERED

        (body,) = recorder.payloads
        assert body["status"] == "Applied"
        assert body["source"] == "Lever"
        assert body["canonical_key"] == "lever:acme:0a1b2c3d-1111-2222-3333-444455556666"

    @pytest.mark.asyncio
    async def test_apply_intent_skips_inline_apply_sites(self, make_pipeline, recorder):
        p = make_pipeline(policy="apply_intent")
        assert await p.orchestrator.on_navigation(nav()) is NavigationOutcome.SKIPPED
        assert recorder.requests == []
        assert await p.seen.count() == 0

    @pytest.mark.asyncio
    async def test_second_sighting_is_suppressed(self, make_pipeline, recorder):
        p = make_pipeline()
        await p.orchestrator.on_navigation(nav())
        outcome = await p.orchestrator.on_navigation(nav(GREENHOUSE + "?gh_src=linkedin"))
        assert outcome is NavigationOutcome.SUPPRESSED
        assert len(recorder.requests) == 1

    @pytest.mark.asyncio
    async def test_same_job_is_tracked_again_after_window(self, make_pipeline, recorder, clock):
        p = make_pipeline()
        await p.orchestrator.on_navigation(nav())
        clock.advance(days=7)
        assert await p.orchestrator.on_navigation(nav()) is NavigationOutcome.DELIVERED
        assert len(recorder.requests) == 2

    @pytest.mark.asyncio
    async def test_paused_drops_without_marking(self, make_pipeline, recorder):
        p = make_pipeline(paused=True)
        assert await p.orchestrator.on_navigation(nav()) is NavigationOutcome.PAUSED
        assert recorder.requests == []

        p.settings = RuntimeSettings(sink_url=p.settings.sink_url, paused=False)
        assert await p.orchestrator.on_navigation(nav()) is NavigationOutcome.DELIVERED

    @pytest.mark.asyncio
    async def test_unconfigured_sink_queues_and_maintenance_delivers_once(
        self, make_pipeline, recorder, sink_url
    ):
        p = make_pipeline(sink_url="")
        assert await p.orchestrator.on_navigation(nav()) is NavigationOutcome.QUEUED
        assert (await p.status.snapshot()).needs_configuration is True

        p.settings = RuntimeSettings(sink_url=sink_url)
        await p.orchestrator.maintain()
        await p.orchestrator.maintain()

        assert len(recorder.payloads) == 1
        assert recorder.payloads[0]["canonical_key"] == "greenhouse:acme:123456"
        snap = await p.status.snapshot()
        assert snap.needs_configuration is False
        assert snap.queue_length == 0

    @pytest.mark.asyncio
    async def test_failed_delivery_still_marks_key_seen(self, make_pipeline, recorder):
        p = make_pipeline()
        recorder.status_code = 500
        assert await p.orchestrator.on_navigation(nav()) is NavigationOutcome.QUEUED
        assert await p.orchestrator.on_navigation(nav()) is NavigationOutcome.SUPPRESSED
        assert len(recorder.requests) == 1
        assert len(await p.queue.pending()) == 1

    @pytest.mark.asyncio
    async def test_title_is_reread_after_wait(self, make_pipeline, recorder):
        p = make_pipeline()

        async def late_title():
            return "Staff Engineer | Acme"

        await p.orchestrator.on_navigation(nav(title="Loading..."), title_source=late_title)
        assert recorder.payloads[0]["role_title"] == "Staff Engineer"

    @pytest.mark.asyncio
    async def test_title_reread_failure_keeps_first_title(self, make_pipeline, recorder):
        p = make_pipeline()

        async def closed_page():
            raise RuntimeError("Target page has been closed")

        outcome = await p.orchestrator.on_navigation(nav(), title_source=closed_page)
        assert outcome is NavigationOutcome.DELIVERED
        assert recorder.payloads[0]["role_title"] == "Software Engineer"

    @pytest.mark.asyncio
    async def test_handler_error_is_contained(self, make_pipeline, recorder, sink_url):
        p = make_pipeline()

        def broken_settings():
            raise OSError("config.yaml vanished")

        p.orchestrator._settings = broken_settings
        assert await p.orchestrator.on_navigation(nav()) is NavigationOutcome.FAILED
        snap = await p.status.snapshot()
        assert "config.yaml vanished" in snap.error_log[-1]["message"]

        p.orchestrator._settings = lambda: RuntimeSettings(sink_url=sink_url)
        assert await p.orchestrator.on_navigation(nav()) is NavigationOutcome.DELIVERED


class TestUpload:
    @pytest.mark.asyncio
    async def test_resume_is_uploaded_once(self, make_pipeline, recorder):
        recorder.body = {"ok": True, "driveUrl": "https://drive.google.com/file/d/abc"}
        p = make_pipeline()

        assert await p.orchestrator.on_upload(upload()) is UploadOutcome.UPLOADED
        assert await p.orchestrator.on_upload(upload()) is UploadOutcome.SUPPRESSED

        (body,) = recorder.payloads
        assert body["action"] == "uploadResume"
        assert body["fileName"] == "resume.pdf"
        assert body["mimeType"] == PDF
        assert body["fileSize"] == 2048
        assert body["canonical_key"] == "lever:acme:0a1b2c3d-1111-2222-3333-444455556666"
        assert body["company"] == "Acme"
        assert body["jd_url"] == LEVER_APPLY

        snap = await p.status.snapshot()
        assert snap.last_resume == {
            "file_name": "resume.pdf",
            "drive_url": "https://drive.google.com/file/d/abc",
        }

    @pytest.mark.asyncio
    async def test_new_file_name_uploads_again(self, make_pipeline, recorder):
        p = make_pipeline()
        await p.orchestrator.on_upload(upload())
        assert await p.orchestrator.on_upload(upload(file_name="resume-v2.pdf")) is UploadOutcome.UPLOADED
        assert len(recorder.requests) == 2

    @pytest.mark.asyncio
    async def test_docx_is_accepted(self, make_pipeline):
        p = make_pipeline()
        docx = "application/vnd.openxmlformats-officedocument.wordprocessingml.document"
        assert await p.orchestrator.on_upload(upload("cv.docx", docx)) is UploadOutcome.UPLOADED

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "event",
        [
            upload(file_name="photo.png", mime_type="image/png"),
            upload(byte_size=10 * 1024 * 1024 + 1),
        ],
    )
    async def test_non_resume_uploads_are_rejected(self, make_pipeline, recorder, event):
        p = make_pipeline()
        assert await p.orchestrator.on_upload(event) is UploadOutcome.REJECTED
        assert recorder.requests == []

    @pytest.mark.asyncio
    async def test_paused(self, make_pipeline, recorder):
        p = make_pipeline(paused=True)
        assert await p.orchestrator.on_upload(upload()) is UploadOutcome.PAUSED
        assert recorder.requests == []

    @pytest.mark.asyncio
    async def test_unconfigured_sink_does_not_mark_upload(self, make_pipeline, recorder, sink_url):
        p = make_pipeline(sink_url="")
        assert await p.orchestrator.on_upload(upload()) is UploadOutcome.NOT_CONFIGURED
        assert await p.status.needs_configuration() is True
        assert recorder.requests == []

        p.settings = RuntimeSettings(sink_url=sink_url)
        assert await p.orchestrator.on_upload(upload()) is UploadOutcome.UPLOADED

    @pytest.mark.asyncio
    async def test_failed_upload_is_not_retried(self, make_pipeline, recorder):
        p = make_pipeline()
        recorder.status_code = 502
        assert await p.orchestrator.on_upload(upload()) is UploadOutcome.FAILED
        assert await p.queue.pending() == []

        snap = await p.status.snapshot()
        assert snap.error_log[-1]["context"]["fileData"] == "<omitted>"

    @pytest.mark.asyncio
    async def test_sink_rejection_is_a_failure(self, make_pipeline, recorder):
        recorder.body = {"ok": False, "error": "Drive quota exceeded"}
        p = make_pipeline()
        assert await p.orchestrator.on_upload(upload()) is UploadOutcome.FAILED
        assert (await p.status.snapshot()).last_resume == {}

    @pytest.mark.asyncio
    async def test_plain_text_response_counts_as_success(self, make_pipeline, recorder):
        recorder.body = None
        p = make_pipeline()
        assert await p.orchestrator.on_upload(upload()) is UploadOutcome.UPLOADED


@pytest.mark.asyncio
async def test_maintenance_sweeps_expired_keys(make_pipeline, clock):
    p = make_pipeline()
    await p.orchestrator.on_navigation(nav())
    clock.advance(days=8)
    await p.orchestrator.maintain()
    assert await p.seen.count() == 0
