import asyncio

import pytest

from app.handlers.base import HandlerContext
from app.handlers.interceptor import intercept, is_global_command, normalize_command
from app.schemas.session import SessionData
from app.services import bot_messages
from app.services.bank_account_service import list_active_accounts
from app.services.state_machine import DialogState
from conftest import PHONE, make_account


def _ctx(db, services, message, user=None, data=None, state=DialogState.IDLE):
    return HandlerContext(
        message=message,
        phone_number=PHONE,
        user=user,
        session_data=data or SessionData(),
        db=db,
        services=services,
        state=state,
    )


def _intercept(db, services, message, state=DialogState.IDLE, **kwargs):
    return asyncio.run(intercept(state, _ctx(db, services, message, state=state, **kwargs)))


@pytest.fixture
def two_accounts(db, user):
    make_account(db, user, bank_name="Wells Fargo", number="9876543210", is_default=False)
    db.commit()
    return list_active_accounts(db, user.id)


class TestCommandParsing:
    def test_normalize(self):
        assert normalize_command("  add   bank ") == "ADD BANK"

    @pytest.mark.parametrize("command", ["HELP", "DEFAULT 2", "REMOVE 1", "REMOVE BANK 3", "CONFIRM REMOVE"])
    def test_recognized(self, command):
        assert is_global_command(command) is True

    @pytest.mark.parametrize("command", ["MOM", "DEFAULT", "REMOVE X", "500"])
    def test_not_recognized(self, command):
        assert is_global_command(command) is False


class TestProcessingLock:
    def test_blocks_everything_including_cancel(self, db, services, user):
        data = SessionData(transfer_processing=True, active_transfer_id="t1")
        for message in ("CANCEL", "STATUS", "hello"):
            result = _intercept(db, services, message, user=user, data=data)
            assert result.response == bot_messages.MSG_TRANSFER_IN_PROGRESS
            assert result.next_state == DialogState.IDLE
            assert result.data == {}


class TestNonIdleGate:
    def test_cancel_returns_to_idle(self, db, services, user):
        data = SessionData(selected_recipient_id="r1")
        result = _intercept(db, services, "cancel", state=DialogState.ASKING_AMOUNT, user=user, data=data)
        assert result.next_state == DialogState.IDLE
        assert result.response.startswith(bot_messages.MSG_ACTION_CANCELLED)
        assert result.data["selected_recipient_id"] is None

    @pytest.mark.parametrize("message", ["STATUS", "rate", "DEFAULT 2", "remove bank 1"])
    def test_global_commands_refused(self, db, services, user, message):
        result = _intercept(db, services, message, state=DialogState.ASKING_AMOUNT, user=user)
        assert result.response == bot_messages.MSG_NOT_AVAILABLE
        assert result.next_state == DialogState.ASKING_AMOUNT

    def test_other_input_passes_through(self, db, services, user):
        assert _intercept(db, services, "250", state=DialogState.ASKING_AMOUNT, user=user) is None


class TestIdleCommands:
    def test_unrecognized_passes_through(self, db, services, user):
        assert _intercept(db, services, "Mom", user=user) is None

    def test_help(self, db, services):
        result = _intercept(db, services, "help")
        assert "SurgePay Help Menu" in result.response
        assert result.template == "idle_menu"

    def test_unknown_user_needs_account(self, db, services):
        result = _intercept(db, services, "STATUS")
        assert result.response.startswith(bot_messages.MSG_NO_ACCOUNT)
        assert result.next_state == DialogState.IDLE

    def test_status_without_transfers(self, db, services, user):
        assert _intercept(db, services, "STATUS", user=user).response.startswith("No transfers yet.")

    def test_rate_shows_examples(self, db, services):
        response = _intercept(db, services, "RATE").response
        assert "1 USD = ₹83.5000 INR" in response
        assert "$100 → ₹8341.65 (fee: $0.10)" in response
        assert "Live rate" in response

    def test_banks_lists_default_marker(self, db, services, user, two_accounts):
        response = _intercept(db, services, "BANKS", user=user).response
        assert "1. Chase Bank" in response
        assert "****7890 ⭐ Default" in response
        assert "2. Wells Fargo" in response

    def test_add_bank_starts_linking(self, db, services, user):
        result = _intercept(db, services, "ADD BANK", user=user)
        assert result.next_state == DialogState.INITIATING_BANK_LINK
        assert result.data == {"adding_bank": True}
        assert "Reply CONNECT to proceed." in result.response

    def test_add_bank_at_limit(self, db, services, user):
        for index in range(4):
            make_account(db, user, number=f"55500000{index}0", is_default=False)
        db.commit()
        result = _intercept(db, services, "ADD BANK", user=user)
        assert result.next_state == DialogState.IDLE
        assert "maximum of 5 bank accounts" in result.response

    def test_recipients_empty_starts_setup(self, db, services, user):
        result = _intercept(db, services, "RECIPIENTS", user=user)
        assert result.next_state == DialogState.ASKING_RECIPIENT_NAME

    def test_new_for_unknown_user_onboards(self, db, services):
        assert _intercept(db, services, "NEW").next_state == DialogState.ASKING_NAME

    def test_profile(self, db, services, user):
        response = _intercept(db, services, "PROFILE", user=user).response
        assert "Asha Rao" in response
        assert "Linked Banks: 1" in response


class TestAccountManagement:
    def test_set_default(self, db, services, user, two_accounts):
        result = _intercept(db, services, "DEFAULT 2", user=user)
        assert "✓ Default Updated" in result.response
        assert list_active_accounts(db, user.id)[0].bank_name == "Wells Fargo"

    def test_set_default_out_of_range(self, db, services, user, two_accounts):
        assert "Invalid selection" in _intercept(db, services, "DEFAULT 7", user=user).response

    def test_remove_only_account_refused(self, db, services, user):
        result = _intercept(db, services, "REMOVE 1", user=user)
        assert result.response.startswith("Cannot remove your only bank account.")
        assert result.data == {}

    def test_remove_is_two_step(self, db, services, user, two_accounts):
        staged = _intercept(db, services, "REMOVE BANK 2", user=user)
        assert "Reply CONFIRM REMOVE to proceed." in staged.response
        assert staged.data["awaiting_remove_confirm"] is True

        data = SessionData().merge(staged.data)
        confirmed = _intercept(db, services, "CONFIRM REMOVE", user=user, data=data)

        assert "✓ Account Removed" in confirmed.response
        assert confirmed.data == {"bank_to_remove": None, "awaiting_remove_confirm": None}
        assert [account.bank_name for account in list_active_accounts(db, user.id)] == ["Chase Bank"]

    def test_confirm_without_pending_removal(self, db, services, user, two_accounts):
        result = _intercept(db, services, "CONFIRM REMOVE", user=user)
        assert result.response == "No pending removal. Type BANKS to manage your accounts."
        assert len(list_active_accounts(db, user.id)) == 2

    def test_confirm_with_stale_pending_id(self, db, services, user, two_accounts):
        data = SessionData(awaiting_remove_confirm=True, bank_to_remove="00000000-0000-0000-0000-000000000000")
        result = _intercept(db, services, "CONFIRM REMOVE", user=user, data=data)
        assert result.response == "No pending removal. Type BANKS to manage your accounts."

    def test_cancel_in_idle_drops_pending_removal(self, db, services, user, two_accounts):
        data = SessionData(awaiting_remove_confirm=True, bank_to_remove=str(two_accounts[1].id))
        result = _intercept(db, services, "CANCEL", user=user, data=data)
        assert result.data["bank_to_remove"] is None
        assert result.data["awaiting_remove_confirm"] is None
