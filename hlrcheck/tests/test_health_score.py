from types import SimpleNamespace

from hlrcheck.app.services.health_score import (
    calculate_health_score,
    health_label,
    calculate_batch_health_scores,
)


def test_perfect_score():
    result = {
        "valid_number": "valid",
        "reachable": "reachable",
        "ported": "not_ported",
        "roaming": "not_roaming",
        "current_network_type": "mobile",
    }
    assert calculate_health_score(result) == 100


def test_partial_score_from_row_object():
    row = SimpleNamespace(
        valid_number="valid",
        reachable="unknown",
        ported="ported",
        roaming="roaming",
        current_network_type="fixed_line",
    )
    assert calculate_health_score(row) == 40 + 10 + 10 + 5


def test_empty_result_scores_zero():
    assert calculate_health_score({}) == 0


def test_labels():
    assert health_label(100) == "Excellent"
    assert health_label(80) == "Excellent"
    assert health_label(65) == "Good"
    assert health_label(40) == "Fair"
    assert health_label(20) == "Poor"
    assert health_label(19) == "Bad"


def test_batch_scores_keep_order():
    out = calculate_batch_health_scores([{"valid_number": "valid"}, {}])
    assert [o["health_score"] for o in out] == [40, 0]
