"""
Unit tests for Xray publishing.

HTTP calls are mocked by patching ``aiohttp.ClientSession.post``; the
reporter tests use an AsyncMock client.
"""

import os
from datetime import datetime
from unittest.mock import AsyncMock, MagicMock, patch

import aiohttp
import pytest

from posqa.core.crypto import encrypt
from posqa.core.exceptions import ConfigurationError, XrayError
from posqa.core.platform import PlatformMode
from posqa.execution.models import Attachment, AttemptRecord, ScenarioResult, ScenarioStatus
from posqa.execution.retry import RetryTracker
from posqa.reporting.xray import (
    MAX_COMMENT_LENGTH,
    XRAY_AUTH_ENDPOINT,
    ExecutionPayloadBuilder,
    SharedExecutionKey,
    XrayClient,
    XrayConfig,
    XrayReporter,
)


def make_result(
    test_key,
    status=ScenarioStatus.PASSED,
    error_kind=None,
    error_message=None,
    defect_key=None,
    attachments=None,
):
    return ScenarioResult(
        name=f"Scenario {test_key}",
        context_id="ctx",
        platform=PlatformMode.WEB,
        status=status,
        started_at=datetime(2024, 5, 1, 9, 30),
        completed_at=datetime(2024, 5, 1, 9, 31),
        duration=60.0,
        attempts=[AttemptRecord(attempt=1, status=status, duration=60.0)],
        error_kind=error_kind,
        error_message=error_message,
        test_key=test_key,
        defect_key=defect_key,
        attachments=attachments or [],
    )


@pytest.fixture
def xray_config():
    return XrayConfig(
        client_id="client",
        client_secret="secret",
        jira_url="https://pos.atlassian.net/",
        jira_email="qa@example.com",
        jira_token="jira-token",
        project_key="POS",
    )


class TestXrayConfig:
    """Test cases for XrayConfig."""

    def test_from_properties(self, make_properties):
        props = make_properties(
            env_values={"qa.jira.url": "https://qa.atlassian.net"},
            environment="qa",
            **{"xray.clientid": "client", "xray.clientsecret": " secret ", "jira.project.key": "POS"},
        )

        config = XrayConfig.from_properties(props)

        assert config.client_id == "client"
        assert config.client_secret == "secret"
        assert config.jira_url == "https://qa.atlassian.net"
        assert config.project_key == "POS"
        assert config.auth_endpoint == XRAY_AUTH_ENDPOINT
        assert config.execution_key is None
        assert config.timeout == 30.0

    def test_blank_values_are_none(self, make_properties):
        config = XrayConfig.from_properties(make_properties(execid="  "))

        assert config.execution_key is None

    @patch.dict(os.environ, {"POSQA_SECRET_KEY": "pos-secret"})
    def test_encrypted_credentials_are_decrypted(self, make_properties):
        props = make_properties(
            **{
                "xray.clientsecret": f"ENC({encrypt('xray-secret')})",
                "jira.email.encrypted": encrypt("qa@example.com"),
                "jira.token": "plain-token",
            }
        )

        config = XrayConfig.from_properties(props)

        assert config.client_secret == "xray-secret"
        assert config.jira_email == "qa@example.com"
        assert config.jira_token == "plain-token"

    @patch.dict(os.environ, {}, clear=True)
    def test_encrypted_value_without_secret_key(self, make_properties):
        props = make_properties(**{"jira.token": "ENC(AAAAAAAAAAAAAAAAAAAAAAAA)"})

        with pytest.raises(ConfigurationError) as exc_info:
            XrayConfig.from_properties(props)

        assert exc_info.value.key == "POSQA_SECRET_KEY"

    def test_test_plan_key(self, make_properties):
        config = XrayConfig.from_properties(make_properties(**{"test.plan.key": "POS-9"}))

        assert config.test_plan_key == "POS-9"


class TestExecutionPayloadBuilder:
    """Test cases for ExecutionPayloadBuilder."""

    def test_build(self):
        payload = (
            ExecutionPayloadBuilder()
            .with_execution_key("POS-100")
            .add_test("POS-1", "PASSED")
            .add_test("POS-2", "FAILED", "total mismatch")
            .build()
        )

        assert payload == {
            "testExecutionKey": "POS-100",
            "tests": [
                {"testKey": "POS-1", "status": "PASSED"},
                {"testKey": "POS-2", "status": "FAILED", "comment": "total mismatch"},
            ],
        }

    def test_defects_belong_to_their_test(self):
        payload = (
            ExecutionPayloadBuilder("POS-100")
            .add_test("POS-1", "FAILED", defects=["BUG-7", " "])
            .add_test("POS-2", "PASSED")
            .build()
        )

        assert payload["tests"][0]["defects"] == ["BUG-7"]
        assert "defects" not in payload["tests"][1]

    def test_failed_result_carries_its_defect(self):
        result = make_result("POS-1", ScenarioStatus.FAILED, "AssertionError", "x", defect_key="BUG-7")

        payload = ExecutionPayloadBuilder("POS-100").add_result(result).build()

        assert payload["tests"][0]["defects"] == ["BUG-7"]

    def test_passed_result_has_no_defect(self):
        payload = ExecutionPayloadBuilder("POS-100").add_result(
            make_result("POS-1", defect_key="BUG-7")
        ).build()

        assert "defects" not in payload["tests"][0]

    def test_video_and_screenshot_evidence(self, tmp_path):
        video = tmp_path / "checkout.webm"
        video.write_bytes(b"webm")
        shot = tmp_path / "failure.png"
        shot.write_bytes(b"png")
        trace = tmp_path / "checkout.zip"
        trace.write_bytes(b"zip")
        attachments = [
            Attachment(name="checkout", path=str(video), mime_type="video/webm"),
            Attachment(name="failure", path=str(shot), mime_type="image/png"),
            Attachment(name="trace", path=str(trace), mime_type="application/zip"),
        ]
        result = make_result("POS-1", ScenarioStatus.FAILED, "AssertionError", "x", attachments=attachments)

        payload = ExecutionPayloadBuilder("POS-100").add_result(result).build()

        evidence = payload["tests"][0]["evidence"]
        assert [e["filename"] for e in evidence] == ["checkout.webm", "failure.png"]
        assert evidence[0] == {"data": "d2VibQ==", "filename": "checkout.webm", "contentType": "video/webm"}

    def test_missing_evidence_file_is_skipped(self, tmp_path):
        attachments = [Attachment(name="gone", path=str(tmp_path / "gone.webm"), mime_type="video/webm")]

        payload = ExecutionPayloadBuilder("POS-100").add_result(
            make_result("POS-1", attachments=attachments)
        ).build()

        assert "evidence" not in payload["tests"][0]

    def test_evidence_can_be_turned_off(self, tmp_path):
        video = tmp_path / "checkout.webm"
        video.write_bytes(b"webm")
        attachments = [Attachment(name="checkout", path=str(video), mime_type="video/webm")]

        payload = ExecutionPayloadBuilder("POS-100", attach_evidence=False).add_result(
            make_result("POS-1", attachments=attachments)
        ).build()

        assert "evidence" not in payload["tests"][0]

    def test_comment_truncated(self):
        payload = ExecutionPayloadBuilder("POS-100").add_test("POS-1", "FAILED", "x" * 5000).build()

        assert len(payload["tests"][0]["comment"]) == MAX_COMMENT_LENGTH

    def test_missing_key(self):
        with pytest.raises(ValueError):
            ExecutionPayloadBuilder().add_test("POS-1", "PASSED").build()

    def test_missing_tests(self):
        with pytest.raises(ValueError):
            ExecutionPayloadBuilder("POS-100").build()

    @pytest.mark.parametrize(
        "status,expected",
        [
            (ScenarioStatus.PASSED, "PASSED"),
            (ScenarioStatus.FAILED, "FAILED"),
            (ScenarioStatus.ERROR, "FAILED"),
            (ScenarioStatus.SKIPPED, "TODO"),
        ],
    )
    def test_add_result_maps_status(self, status, expected):
        payload = ExecutionPayloadBuilder("POS-100").add_result(make_result("POS-1", status)).build()

        assert payload["tests"][0]["status"] == expected

    def test_failure_comment(self):
        result = make_result("POS-1", ScenarioStatus.FAILED, "AssertionError", "wrong total")

        payload = ExecutionPayloadBuilder("POS-100").add_result(result).build()

        assert payload["tests"][0]["comment"] == "AssertionError: wrong total"


class TestSharedExecutionKey:
    """Test cases for SharedExecutionKey."""

    def test_set_persists_to_file(self, tmp_path):
        path = tmp_path / "target" / "testexecution.key"
        store = SharedExecutionKey(path)

        store.set("POS-100")

        assert path.read_text() == "POS-100"
        assert SharedExecutionKey(path).get() == "POS-100"

    def test_get_without_file(self, tmp_path):
        assert SharedExecutionKey(tmp_path / "missing.key").get() is None

    def test_reset(self, tmp_path):
        path = tmp_path / "testexecution.key"
        store = SharedExecutionKey(path)
        store.set("POS-100")

        store.reset(remove_file=True)

        assert store.get() is None
        assert not path.exists()


class TestXrayClient:
    """Test cases for XrayClient."""

    @pytest.mark.asyncio
    async def test_authenticate(self, xray_config):
        client = XrayClient(xray_config)

        with patch("aiohttp.ClientSession.post") as mock_post:
            mock_response = AsyncMock(status=200)
            mock_response.text.return_value = '"abc.def"'
            mock_post.return_value.__aenter__.return_value = mock_response

            token = await client.authenticate()

        assert token == "abc.def"
        assert mock_post.call_args.kwargs["json"] == {
            "client_id": "client",
            "client_secret": "secret",
        }

    @pytest.mark.asyncio
    async def test_authenticate_failure(self, xray_config):
        client = XrayClient(xray_config)

        with patch("aiohttp.ClientSession.post") as mock_post:
            mock_response = AsyncMock(status=401)
            mock_response.text.return_value = "Unauthorized"
            mock_post.return_value.__aenter__.return_value = mock_response

            with pytest.raises(XrayError) as exc_info:
                await client.authenticate()

        assert exc_info.value.status == 401

    @pytest.mark.asyncio
    async def test_authenticate_requires_credentials(self):
        with pytest.raises(XrayError):
            await XrayClient(XrayConfig()).authenticate()

    @pytest.mark.asyncio
    async def test_create_test_execution(self, xray_config):
        client = XrayClient(xray_config)

        with patch("aiohttp.ClientSession.post") as mock_post:
            mock_response = AsyncMock(status=201)
            mock_response.json.return_value = {"key": "POS-100"}
            mock_post.return_value.__aenter__.return_value = mock_response

            key = await client.create_test_execution("Nightly", "desc")

        assert key == "POS-100"
        url = mock_post.call_args.args[0]
        assert url == "https://pos.atlassian.net/rest/api/2/issue"
        fields = mock_post.call_args.kwargs["json"]["fields"]
        assert fields["project"] == {"key": "POS"}
        assert fields["issuetype"] == {"name": "Test Execution"}

    @pytest.mark.asyncio
    async def test_create_test_execution_without_jira_settings(self):
        client = XrayClient(XrayConfig(client_id="a", client_secret="b"))

        with pytest.raises(XrayError):
            await client.create_test_execution("Nightly")

    @pytest.mark.asyncio
    async def test_import_results_uses_bearer_token(self, xray_config):
        client = XrayClient(xray_config)
        client._token = "abc.def"

        with patch("aiohttp.ClientSession.post") as mock_post:
            mock_response = AsyncMock(status=200)
            mock_response.json.return_value = {"key": "POS-100"}
            mock_post.return_value.__aenter__.return_value = mock_response

            data = await client.import_results({"testExecutionKey": "POS-100", "tests": []})

        assert data == {"key": "POS-100"}
        assert mock_post.call_args.kwargs["headers"]["Authorization"] == "Bearer abc.def"

    @pytest.mark.asyncio
    async def test_import_results_failure(self, xray_config):
        client = XrayClient(xray_config)
        client._token = "abc.def"

        with patch("aiohttp.ClientSession.post") as mock_post:
            mock_response = AsyncMock(status=400)
            mock_response.text.return_value = "bad payload"
            mock_post.return_value.__aenter__.return_value = mock_response

            with pytest.raises(XrayError) as exc_info:
                await client.import_results({})

        assert "bad payload" in str(exc_info.value)

    @pytest.mark.asyncio
    async def test_link_issues(self, xray_config):
        client = XrayClient(xray_config)

        with patch("aiohttp.ClientSession.post") as mock_post:
            mock_post.return_value.__aenter__.return_value = AsyncMock(status=201)

            await client.link_issues("POS-9", "POS-100", "Relates")

        assert mock_post.call_args.args[0] == "https://pos.atlassian.net/rest/api/2/issueLink"
        assert mock_post.call_args.kwargs["json"] == {
            "type": {"name": "Relates"},
            "inwardIssue": {"key": "POS-9"},
            "outwardIssue": {"key": "POS-100"},
        }

    @pytest.mark.asyncio
    async def test_link_issues_failure(self, xray_config):
        client = XrayClient(xray_config)

        with patch("aiohttp.ClientSession.post") as mock_post:
            mock_response = AsyncMock(status=404)
            mock_response.text.return_value = "No issue link type"
            mock_post.return_value.__aenter__.return_value = mock_response

            with pytest.raises(XrayError) as exc_info:
                await client.link_issues("POS-9", "POS-100", "Parent-Child")

        assert exc_info.value.status == 404
        assert exc_info.value.operation == "link_issues"

    @pytest.mark.asyncio
    async def test_link_issues_without_jira_settings(self):
        with pytest.raises(XrayError):
            await XrayClient(XrayConfig()).link_issues("POS-9", "POS-100")


@pytest.fixture
def xray_client():
    client = MagicMock(spec=XrayClient)
    client.create_test_execution = AsyncMock(return_value="POS-100")
    client.import_results = AsyncMock(return_value={})
    client.link_issues = AsyncMock(return_value=None)
    return client


class TestXrayReporter:
    """Test cases for XrayReporter."""

    @pytest.fixture
    def enabled_properties(self, make_properties):
        return make_properties(xray_enabled="true")

    def test_disabled_publishes_nothing(self, make_properties, xray_client, tmp_path):
        reporter = XrayReporter(
            make_properties(), key_store=SharedExecutionKey(tmp_path / "k"), client=xray_client
        )

        assert reporter.publish([make_result("POS-1")]) is None
        xray_client.import_results.assert_not_called()

    def test_creates_execution_once_and_stores_key(self, enabled_properties, xray_client, tmp_path):
        store = SharedExecutionKey(tmp_path / "testexecution.key")
        reporter = XrayReporter(enabled_properties, key_store=store, client=xray_client)

        key = reporter.publish([make_result("POS-1"), make_result("POS-2", ScenarioStatus.FAILED)])

        assert key == "POS-100"
        xray_client.create_test_execution.assert_awaited_once()
        payload = xray_client.import_results.await_args.args[0]
        assert [t["testKey"] for t in payload["tests"]] == ["POS-1", "POS-2"]
        assert (tmp_path / "testexecution.key").read_text() == "POS-100"

    def test_reuses_stored_key(self, enabled_properties, xray_client, tmp_path):
        store = SharedExecutionKey(tmp_path / "testexecution.key")
        store.set("POS-55")
        reporter = XrayReporter(enabled_properties, key_store=store, client=xray_client)

        assert reporter.publish([make_result("POS-1")]) == "POS-55"
        xray_client.create_test_execution.assert_not_called()

    def test_configured_execution_key_wins(self, make_properties, xray_client, tmp_path):
        props = make_properties(xray_enabled="true", execid="POS-77")
        reporter = XrayReporter(props, key_store=SharedExecutionKey(tmp_path / "k"), client=xray_client)

        assert reporter.publish([make_result("POS-1")]) == "POS-77"

    def test_suppressed_and_unkeyed_results_skipped(self, enabled_properties, xray_client, tmp_path):
        tracker = RetryTracker()
        tracker.suppress_xray("POS-2")
        reporter = XrayReporter(
            enabled_properties,
            tracker=tracker,
            key_store=SharedExecutionKey(tmp_path / "k"),
            client=xray_client,
        )

        reporter.publish([make_result("POS-1"), make_result("POS-2"), make_result(None)])

        payload = xray_client.import_results.await_args.args[0]
        assert [t["testKey"] for t in payload["tests"]] == ["POS-1"]

    def test_nothing_reportable(self, enabled_properties, xray_client, tmp_path):
        reporter = XrayReporter(
            enabled_properties, key_store=SharedExecutionKey(tmp_path / "k"), client=xray_client
        )

        assert reporter.publish([make_result(None)]) is None
        xray_client.create_test_execution.assert_not_called()

    @pytest.mark.parametrize(
        "error",
        [
            XrayError("import failed", status=500),
            aiohttp.ClientConnectionError("refused"),
            AttributeError("'list' object has no attribute 'get'"),
            KeyError("key"),
        ],
    )
    def test_failures_are_logged_not_raised(self, enabled_properties, xray_client, tmp_path, caplog, error):
        xray_client.import_results.side_effect = error
        reporter = XrayReporter(
            enabled_properties, key_store=SharedExecutionKey(tmp_path / "k"), client=xray_client
        )

        assert reporter.publish([make_result("POS-1")]) is None
        assert any("Xray" in record.getMessage() for record in caplog.records)

    def test_new_execution_linked_to_test_plan(self, make_properties, xray_client, tmp_path):
        props = make_properties(xray_enabled="true", **{"test.plan.key": "POS-9"})
        reporter = XrayReporter(props, key_store=SharedExecutionKey(tmp_path / "k"), client=xray_client)

        assert reporter.publish([make_result("POS-1")]) == "POS-100"

        xray_client.link_issues.assert_awaited_once_with("POS-9", "POS-100", "Parent-Child")
        description = xray_client.create_test_execution.await_args.args[1]
        assert "POS-9" in description

    def test_next_link_type_tried_when_rejected(self, make_properties, xray_client, tmp_path):
        xray_client.link_issues.side_effect = [XrayError("no such link type", status=404), None]
        props = make_properties(xray_enabled="true", **{"test.plan.key": "POS-9"})
        reporter = XrayReporter(props, key_store=SharedExecutionKey(tmp_path / "k"), client=xray_client)

        reporter.publish([make_result("POS-1")])

        link_types = [call.args[2] for call in xray_client.link_issues.await_args_list]
        assert link_types == ["Parent-Child", "Relates"]

    def test_failed_link_does_not_stop_import(self, make_properties, xray_client, tmp_path):
        xray_client.link_issues.side_effect = XrayError("forbidden", status=403)
        props = make_properties(xray_enabled="true", **{"test.plan.key": "POS-9"})
        reporter = XrayReporter(props, key_store=SharedExecutionKey(tmp_path / "k"), client=xray_client)

        assert reporter.publish([make_result("POS-1")]) == "POS-100"
        xray_client.import_results.assert_awaited_once()

    def test_existing_execution_is_not_linked(self, make_properties, xray_client, tmp_path):
        props = make_properties(xray_enabled="true", execid="POS-77", **{"test.plan.key": "POS-9"})
        reporter = XrayReporter(props, key_store=SharedExecutionKey(tmp_path / "k"), client=xray_client)

        reporter.publish([make_result("POS-1")])

        xray_client.link_issues.assert_not_called()

    def test_video_evidence_published(self, enabled_properties, xray_client, tmp_path):
        video = tmp_path / "checkout.webm"
        video.write_bytes(b"webm")
        result = make_result(
            "POS-1",
            ScenarioStatus.FAILED,
            "AssertionError",
            "wrong total",
            attachments=[Attachment(name="checkout", path=str(video), mime_type="video/webm")],
        )
        reporter = XrayReporter(
            enabled_properties, key_store=SharedExecutionKey(tmp_path / "k"), client=xray_client
        )

        reporter.publish([result])

        payload = xray_client.import_results.await_args.args[0]
        assert payload["tests"][0]["evidence"][0]["contentType"] == "video/webm"

    @patch.dict(os.environ, {}, clear=True)
    def test_undecryptable_settings_ignored_while_disabled(self, make_properties, xray_client, tmp_path):
        props = make_properties(**{"jira.token": "ENC(AAAAAAAAAAAAAAAAAAAAAAAA)"})

        reporter = XrayReporter(props, key_store=SharedExecutionKey(tmp_path / "k"), client=xray_client)

        assert reporter.publish([make_result("POS-1")]) is None

    @patch.dict(os.environ, {}, clear=True)
    def test_undecryptable_settings_raise_when_enabled(self, make_properties, xray_client, tmp_path):
        props = make_properties(xray_enabled="true", **{"jira.token": "ENC(AAAAAAAAAAAAAAAAAAAAAAAA)"})

        with pytest.raises(ConfigurationError):
            XrayReporter(props, key_store=SharedExecutionKey(tmp_path / "k"), client=xray_client)
