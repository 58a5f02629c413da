"""Tests for inkport.cancellation and inkport.runstate."""

import threading

import pytest

from inkport.cancellation import cancel_current, clear_token, current_token, is_cancelled, new_token
from inkport.errors import ImportInProgress
from inkport.runstate import RunRegistry


class TestCancellationToken:
    def setup_method(self):
        clear_token()

    def teardown_method(self):
        clear_token()

    def test_no_token_not_cancelled(self):
        assert current_token() is None
        assert not is_cancelled()
        assert cancel_current() is False

    def test_cancel_current(self):
        token = new_token()
        assert not is_cancelled()
        assert cancel_current() is True
        assert token.is_set()
        assert is_cancelled()

    def test_explicit_token(self):
        token = threading.Event()
        assert not is_cancelled(token)
        token.set()
        assert is_cancelled(token)

    def test_clear(self):
        new_token()
        clear_token()
        assert current_token() is None


class TestRunRegistry:
    def test_claim_and_release(self):
        reg = RunRegistry()
        with reg.claim("Book"):
            assert reg.is_active("Book")
        assert not reg.is_active("Book")

    def test_second_claim_rejected(self):
        reg = RunRegistry()
        with reg.claim("Book"):
            with pytest.raises(ImportInProgress, match="already running"):
                with reg.claim("Book"):
                    pass
            # the rejected attempt must not release the holder's token
            assert reg.is_active("Book")

    def test_other_books_independent(self):
        reg = RunRegistry()
        with reg.claim("A"), reg.claim("B"):
            assert reg.is_active("A") and reg.is_active("B")

    def test_released_on_error(self):
        reg = RunRegistry()
        with pytest.raises(RuntimeError):
            with reg.claim("Book"):
                raise RuntimeError("boom")
        assert not reg.is_active("Book")

    def test_concurrent_claims_single_winner(self):
        reg = RunRegistry()
        wins = []
        barrier = threading.Barrier(8)

        def attempt():
            barrier.wait()
            wins.append(reg.try_claim("Book"))

        threads = [threading.Thread(target=attempt) for _ in range(8)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()
        assert wins.count(True) == 1
