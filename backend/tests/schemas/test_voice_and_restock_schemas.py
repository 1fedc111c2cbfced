"""Voice policy and restock order validation."""

from uuid import uuid4

import pytest
from pydantic import ValidationError

from tistis.schemas.restock import ReceiptLine, RestockOrderCreate
from tistis.schemas.voice import MinuteLimitPolicyUpdate, VoiceUsageRecord


def test_thresholds_deduplicated_and_sorted():
    policy = MinuteLimitPolicyUpdate(alert_thresholds=[95, 70, 95, 85])
    assert policy.alert_thresholds == [70, 85, 95]


@pytest.mark.parametrize("thresholds", [[0, 50], [50, 101]])
def test_thresholds_out_of_range(thresholds):
    with pytest.raises(ValidationError):
        MinuteLimitPolicyUpdate(alert_thresholds=thresholds)


def test_webhook_url_must_be_http():
    with pytest.raises(ValidationError):
        MinuteLimitPolicyUpdate(webhook_url="ftp://example.com/hook")
    assert MinuteLimitPolicyUpdate(webhook_url="").webhook_url is None


def test_usage_record_requires_call_id():
    with pytest.raises(ValidationError):
        VoiceUsageRecord(tenant_id=uuid4(), call_id="", seconds=30)


def test_order_needs_lines():
    with pytest.raises(ValidationError):
        RestockOrderCreate(items=[])


def test_order_cannot_start_placed():
    line = {"item_id": str(uuid4()), "quantity_requested": 5}
    with pytest.raises(ValidationError):
        RestockOrderCreate(status="placed", items=[line])
    assert RestockOrderCreate(items=[line]).status == "draft"


def test_receipt_quantity_not_negative():
    with pytest.raises(ValidationError):
        ReceiptLine(order_item_id=uuid4(), quantity_received=-1)
