"""
Unit tests for upload pairing schemas and status transitions.

Run: pytest tests/unit/test_upload_models.py -v
"""

from datetime import date

from models.upload import (
    ParsedItemsResponse,
    UploadPairing,
    UploadStatus,
    UploadTokenValidation,
    is_terminal_upload_status,
    is_valid_upload_status_transition,
)
from tests.factories import ParsedItemFactory


class TestUploadStatusTransitions:
    """Tests for is_valid_upload_status_transition()"""

    def test_valid_forward_transitions(self):
        assert is_valid_upload_status_transition(UploadStatus.PENDING, UploadStatus.UPLOADING) is True
        assert is_valid_upload_status_transition(UploadStatus.UPLOADING, UploadStatus.PROCESSING) is True
        assert is_valid_upload_status_transition(UploadStatus.PROCESSING, UploadStatus.COMPLETED) is True
        assert is_valid_upload_status_transition(UploadStatus.PROCESSING, UploadStatus.FAILED) is True

    def test_can_skip_to_expired(self):
        """A token nobody scanned expires straight from PENDING."""
        assert is_valid_upload_status_transition(UploadStatus.PENDING, UploadStatus.EXPIRED) is True

    def test_invalid_backward_transitions(self):
        assert is_valid_upload_status_transition(UploadStatus.PROCESSING, UploadStatus.UPLOADING) is False
        assert is_valid_upload_status_transition(UploadStatus.UPLOADING, UploadStatus.PENDING) is False

    def test_terminal_statuses_are_absorbing(self):
        for terminal in (UploadStatus.COMPLETED, UploadStatus.FAILED, UploadStatus.EXPIRED):
            assert is_terminal_upload_status(terminal) is True
            for status in UploadStatus:
                assert is_valid_upload_status_transition(terminal, status) is False

    def test_no_status_reuse(self):
        assert is_valid_upload_status_transition(UploadStatus.UPLOADING, UploadStatus.UPLOADING) is False


class TestUploadSchemas:

    def test_pairing_accepts_upload_url_alias(self):
        pairing = UploadPairing.model_validate({
            "token": "tok-1",
            "uploadUrl": "http://pos.test/m/upload?token=tok-1",
            "expiresInSeconds": 600,
        })

        assert pairing.pairing_url.endswith("tok-1")
        assert pairing.expires_in_seconds == 600

    def test_pairing_accepts_pairing_url(self):
        pairing = UploadPairing.model_validate({"token": "tok-1", "pairingUrl": "http://x/y"})

        assert pairing.pairing_url == "http://x/y"

    def test_parsed_items(self):
        response = ParsedItemsResponse.model_validate({
            "items": [ParsedItemFactory.create(name="PARACETAMOL 500")],
            "totalItems": 1,
        })

        item = response.items[0]
        assert item.name == "PARACETAMOL 500"
        assert item.batch_no == "B-17"
        assert item.expiry_date == date(2027, 6, 30)

    def test_only_pending_token_accepts_upload(self):
        pending = UploadTokenValidation(token="t", status=UploadStatus.PENDING)
        used = UploadTokenValidation(token="t", status=UploadStatus.PROCESSING)

        assert pending.accepts_upload is True
        assert used.accepts_upload is False
