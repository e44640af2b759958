"""
Tests for SolanaRpcClient: submission, confirmation polling, decimals and
balance deltas.
"""

import pytest
from unittest.mock import patch
from requests.exceptions import ConnectionError

from core.exceptions import ExecutionRejected
from core.models import USDC_MINT
from core.solana_rpc import ConfirmationStatus, RpcError, SolanaRpcClient

OWNER = "OwnerKey"


@pytest.fixture
def rpc():
    return SolanaRpcClient(endpoint="https://rpc.test", poll_interval=0.5)


def status_payload(status):
    return {"result": {"value": [status]}}


class TestCall:
    def test_envelope_and_result(self, rpc):
        with patch.object(rpc, "_req", return_value={"jsonrpc": "2.0", "id": 1, "result": 42}) as mock_req:
            assert rpc.call("getSlot") == 42
        body = mock_req.call_args.kwargs["body"]
        assert body["method"] == "getSlot"
        assert body["params"] == []
        assert body["jsonrpc"] == "2.0"

    def test_error_payload_raises(self, rpc):
        with patch.object(rpc, "_req", return_value={"error": {"code": -32002, "message": "bad"}}):
            with pytest.raises(RpcError):
                rpc.call("getSlot")

    def test_request_ids_increment(self, rpc):
        with patch.object(rpc, "_req", return_value={"result": None}) as mock_req:
            rpc.call("a")
            rpc.call("b")
        ids = [c.kwargs["body"]["id"] for c in mock_req.call_args_list]
        assert ids == [1, 2]


class TestSendTransaction:
    def test_returns_signature_without_retrying(self, rpc):
        with patch.object(rpc, "_req", return_value={"result": "sig-1"}) as mock_req:
            assert rpc.send_transaction("SIGNED") == "sig-1"
        assert mock_req.call_args.kwargs["max_retries"] == 1

    def test_rpc_error_is_rejection(self, rpc):
        with patch.object(rpc, "_req", return_value={"error": {"message": "blockhash not found"}}):
            with pytest.raises(ExecutionRejected):
                rpc.send_transaction("SIGNED")

    def test_network_error_is_rejection(self, rpc):
        with patch.object(rpc, "_req", side_effect=ConnectionError("down")):
            with pytest.raises(ExecutionRejected):
                rpc.send_transaction("SIGNED")


class TestConfirmation:
    def test_confirmed(self, rpc):
        with patch.object(rpc, "_req", return_value=status_payload({"err": None, "confirmationStatus": "confirmed"})):
            result = rpc.wait_for_confirmation("sig-1", timeout_seconds=5)
        assert result.status == ConfirmationStatus.CONFIRMED
        assert result.signature == "sig-1"

    def test_on_chain_error_is_failed(self, rpc):
        err = {"InstructionError": [2, {"Custom": 6001}]}
        with patch.object(rpc, "_req", return_value=status_payload({"err": err, "confirmationStatus": "confirmed"})):
            result = rpc.wait_for_confirmation("sig-1", timeout_seconds=5)
        assert result.status == ConfirmationStatus.FAILED
        assert result.error == err

    @patch("core.solana_rpc.time.sleep")
    @patch("core.solana_rpc.time.monotonic")
    def test_polls_until_confirmed(self, mock_monotonic, mock_sleep, rpc):
        mock_monotonic.side_effect = [0.0, 1.0, 2.0, 3.0]
        responses = [
            status_payload(None),
            status_payload({"err": None, "confirmationStatus": "processed"}),
            status_payload({"err": None, "confirmationStatus": "finalized"}),
        ]
        with patch.object(rpc, "_req", side_effect=responses):
            result = rpc.wait_for_confirmation("sig-1", timeout_seconds=10)

        assert result.status == ConfirmationStatus.CONFIRMED
        assert mock_sleep.call_count == 2
        mock_sleep.assert_called_with(0.5)

    @patch("core.solana_rpc.time.sleep")
    @patch("core.solana_rpc.time.monotonic")
    def test_times_out(self, mock_monotonic, mock_sleep, rpc):
        mock_monotonic.side_effect = [0.0, 1.0, 2.0, 3.5]
        with patch.object(rpc, "_req", return_value=status_payload(None)):
            result = rpc.wait_for_confirmation("sig-1", timeout_seconds=3)

        assert result.status == ConfirmationStatus.TIMEOUT
        assert mock_sleep.call_count == 2

    @patch("core.solana_rpc.time.sleep")
    @patch("core.solana_rpc.time.monotonic")
    def test_transient_poll_error_keeps_waiting(self, mock_monotonic, mock_sleep, rpc):
        mock_monotonic.side_effect = [0.0, 1.0, 2.0]
        responses = [ConnectionError("blip"), status_payload({"err": None, "confirmationStatus": "confirmed"})]
        with patch.object(rpc, "_req", side_effect=responses):
            result = rpc.wait_for_confirmation("sig-1", timeout_seconds=10)

        assert result.status == ConfirmationStatus.CONFIRMED


class TestDecimals:
    def test_known_mint_needs_no_rpc(self, rpc):
        with patch.object(rpc, "_req") as mock_req:
            assert rpc.get_token_decimals(USDC_MINT) == 6
        mock_req.assert_not_called()

    def test_unknown_mint_fetched_once(self, rpc):
        with patch.object(rpc, "_req", return_value={"result": {"value": {"decimals": 9, "amount": "1"}}}) as mock_req:
            assert rpc.get_token_decimals("TokenA") == 9
            assert rpc.get_token_decimals("TokenA") == 9
        assert mock_req.call_count == 1


class TestBalanceChange:
    def _balance(self, mint, owner, amount):
        return {"mint": mint, "owner": owner, "uiTokenAmount": {"uiAmountString": str(amount)}}

    def test_delta_for_owner_and_mint(self, rpc):
        meta = {
            "preTokenBalances": [self._balance("TokenA", OWNER, 5), self._balance("TokenA", "Other", 100)],
            "postTokenBalances": [self._balance("TokenA", OWNER, 25.5), self._balance("TokenA", "Other", 0)],
        }
        with patch.object(rpc, "_req", return_value={"result": {"meta": meta}}):
            assert rpc.get_token_balance_change("sig-1", OWNER, "TokenA") == pytest.approx(20.5)

    def test_new_token_account_has_no_pre_balance(self, rpc):
        meta = {"preTokenBalances": [], "postTokenBalances": [self._balance("TokenA", OWNER, 7)]}
        with patch.object(rpc, "_req", return_value={"result": {"meta": meta}}):
            assert rpc.get_token_balance_change("sig-1", OWNER, "TokenA") == pytest.approx(7.0)

    def test_missing_transaction_is_none(self, rpc):
        with patch.object(rpc, "_req", return_value={"result": None}):
            assert rpc.get_token_balance_change("sig-1", OWNER, "TokenA") is None

    def test_fetch_error_is_none(self, rpc):
        with patch.object(rpc, "_req", side_effect=ConnectionError("down")):
            assert rpc.get_token_balance_change("sig-1", OWNER, "TokenA") is None
