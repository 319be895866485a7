from __future__ import annotations

import hashlib
import hmac

from sport_attendance.codes.oracle import (
    generate_code,
    generate_session_secret,
    seconds_until_rotate,
    verify_code,
)

SECRET = "a" * 64
WINDOW_START = 1_770_000_000_000 - (1_770_000_000_000 % 30_000)


def test_code_is_six_ascii_digits():
    for t in (0, 1, 29_999, 30_000, WINDOW_START, WINDOW_START + 12_345):
        code = generate_code(SECRET, t)
        assert len(code) == 6
        assert code.isdigit()


def test_code_matches_hmac_sha256_truncation():
    period = WINDOW_START // 30_000
    digest = hmac.new(SECRET.encode(), str(period).encode(), hashlib.sha256).digest()
    expected = str(int.from_bytes(digest[:4], "big") % 1_000_000).zfill(6)

    assert generate_code(SECRET, WINDOW_START) == expected
    assert generate_code(SECRET, WINDOW_START + 29_999) == expected


def test_generate_is_deterministic():
    assert generate_code(SECRET, WINDOW_START) == generate_code(SECRET, WINDOW_START)


def test_distinct_secrets_give_distinct_codes():
    codes = {generate_code(f"secret-{i}", WINDOW_START) for i in range(20)}
    assert len(codes) >= 19


def test_verify_accepts_current_window():
    code = generate_code(SECRET, WINDOW_START)
    assert verify_code(SECRET, code, WINDOW_START)
    assert verify_code(SECRET, code, WINDOW_START + 29_000)


def test_verify_tolerates_exactly_one_previous_window():
    code = generate_code(SECRET, WINDOW_START)
    assert verify_code(SECRET, code, WINDOW_START + 30_000)
    assert verify_code(SECRET, code, WINDOW_START + 59_999)


def test_verify_rejects_codes_older_than_one_window():
    code = generate_code(SECRET, WINDOW_START)
    assert not verify_code(SECRET, code, WINDOW_START + 60_000)
    assert not verify_code(SECRET, code, WINDOW_START + 300_000)


def test_verify_rejects_future_window_code():
    future = generate_code(SECRET, WINDOW_START + 30_000)
    if future != generate_code(SECRET, WINDOW_START) and future != generate_code(SECRET, WINDOW_START - 30_000):
        assert not verify_code(SECRET, future, WINDOW_START)


def test_verify_rejects_malformed_input():
    assert not verify_code(SECRET, "", WINDOW_START)
    assert not verify_code(SECRET, "12345", WINDOW_START)
    assert not verify_code(SECRET, "１２３４５６", WINDOW_START)


def test_seconds_until_rotate():
    assert seconds_until_rotate(WINDOW_START) == 30
    assert seconds_until_rotate(WINDOW_START + 1) == 30
    assert seconds_until_rotate(WINDOW_START + 29_000) == 1
    assert seconds_until_rotate(WINDOW_START + 29_999) == 1


def test_session_secret_has_256_bits_and_is_random():
    a, b = generate_session_secret(), generate_session_secret()
    assert len(a) == 64
    int(a, 16)
    assert a != b
