"""Unit tests for the one-time code store."""

import asyncio
import threading

import pytest

from src.kernel.errors import ExpiredCodeError, InvalidCodeError
from src.kernel.identity.codes import CodeSweeper, OneTimeCodeStore, generate_code
from src.kernel.identity.phone import PhoneNormalizer


def _fixed_codes(*codes):
    remaining = list(codes)
    return lambda: remaining.pop(0)


class TestGenerateCode:
    def test_six_digits_in_range(self):
        for _ in range(200):
            code = generate_code()
            assert len(code) == 6
            assert code.isdigit()
            assert 100000 <= int(code) <= 999999


class TestOneTimeCodeStore:
    """Tests for issue/consume/verify semantics."""

    def test_code_is_single_use(self, clock):
        store = OneTimeCodeStore("otp", 300, clock=clock)
        code = store.issue("user-1")

        assert store.verify("user-1", code) is True
        assert store.verify("user-1", code) is False

    def test_issue_under_local_verify_under_canonical(self, clock):
        """Keys are normalized, so any phone format reaches the same code."""
        phones = PhoneNormalizer()
        store = OneTimeCodeStore("otp", 300, clock=clock, key_normalizer=phones.subject_key)
        code = store.issue("0501234567")

        assert store.verify("+972501234567", code) is True
        assert store.verify("+9720501234567", code) is False

    def test_wrong_code_leaves_record_untouched(self, clock):
        store = OneTimeCodeStore("reset", 900, clock=clock, code_factory=_fixed_codes("123456"))
        store.issue("user-1", metadata={"email": "a@example.com"})

        with pytest.raises(InvalidCodeError):
            store.consume("user-1", "000000")

        record = store.peek("user-1")
        assert record is not None
        assert record.code == "123456"
        assert record.metadata == {"email": "a@example.com"}
        assert store.consume("user-1", "123456").subject == "user-1"

    def test_unknown_key(self, clock):
        store = OneTimeCodeStore("otp", 300, clock=clock)
        with pytest.raises(InvalidCodeError):
            store.consume("nobody", "123456")

    def test_expired_code_is_removed(self, clock):
        store = OneTimeCodeStore("otp", 300, clock=clock)
        code = store.issue("user-1")
        clock.advance(301)

        with pytest.raises(ExpiredCodeError):
            store.consume("user-1", code)
        assert len(store) == 0
        with pytest.raises(InvalidCodeError):
            store.consume("user-1", code)

    def test_code_valid_until_deadline(self, clock):
        store = OneTimeCodeStore("otp", 300, clock=clock)
        code = store.issue("user-1")
        clock.advance(300)
        assert store.verify("user-1", code) is True

    def test_reissue_replaces_previous_code(self, clock):
        store = OneTimeCodeStore("otp", 300, clock=clock, code_factory=_fixed_codes("111111", "222222"))
        first = store.issue("user-1")
        second = store.issue("user-1")

        assert store.verify("user-1", first) is False
        assert store.verify("user-1", second) is True

    def test_per_issue_ttl(self, clock):
        store = OneTimeCodeStore("otp", 300, clock=clock)
        code = store.issue("user-1", ttl=10)
        clock.advance(11)
        assert store.verify("user-1", code) is False

    def test_non_string_and_unicode_submissions(self, clock):
        store = OneTimeCodeStore("otp", 300, clock=clock, code_factory=_fixed_codes("123456"))
        store.issue("user-1")
        assert store.verify("user-1", "１２３４５６") is False
        assert store.verify("user-1", None) is False
        assert store.verify("user-1", 123456) is True

    def test_discard(self, clock):
        store = OneTimeCodeStore("otp", 300, clock=clock)
        code = store.issue("user-1")
        store.discard("user-1")
        assert store.verify("user-1", code) is False

    def test_sweep_removes_only_expired(self, clock):
        store = OneTimeCodeStore("otp", 300, clock=clock)
        store.issue("old", ttl=10)
        store.issue("fresh", ttl=1000)
        clock.advance(20)

        assert store.sweep() == 1
        assert store.peek("old") is None
        assert store.peek("fresh") is not None

    def test_concurrent_verify_succeeds_once(self, clock):
        store = OneTimeCodeStore("otp", 300, clock=clock)
        code = store.issue("user-1")
        results = []
        barrier = threading.Barrier(8)

        def attempt():
            barrier.wait()
            results.append(store.verify("user-1", code))

        threads = [threading.Thread(target=attempt) for _ in range(8)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert results.count(True) == 1


class TestCodeSweeper:
    def test_sweep_once_covers_all_stores(self, clock):
        otp = OneTimeCodeStore("otp", 10, clock=clock)
        reset = OneTimeCodeStore("reset", 10, clock=clock)
        otp.issue("a")
        reset.issue("b")
        clock.advance(11)

        assert CodeSweeper([otp, reset]).sweep_once() == 2

    @pytest.mark.asyncio
    async def test_start_and_stop(self, clock):
        store = OneTimeCodeStore("otp", 10, clock=clock)
        store.issue("a")
        clock.advance(11)
        sweeper = CodeSweeper([store], interval=0.01)

        sweeper.start()
        assert sweeper.running
        for _ in range(50):
            if len(store) == 0:
                break
            await asyncio.sleep(0.01)
        await sweeper.stop()

        assert len(store) == 0
        assert not sweeper.running
