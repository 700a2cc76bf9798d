import asyncio

import httpx
import pytest

from app.client.api_client import WasilApiClient
from app.client.auth_flow import AuthFlow, AuthState, Screen, format_local_phone
from app.client.auth_service import AuthClientService
from app.client.countdown import ResendCountdown
from app.client.storage import AUTH_TOKEN_KEY, LocalSessionStorage


@pytest.fixture
def storage():
    return LocalSessionStorage()


@pytest.fixture
async def flow(app, storage):
    holder = {}
    api = WasilApiClient(
        "http://testserver",
        storage,
        transport=httpx.ASGITransport(app=app),
        on_unauthorized=lambda: holder["flow"].handle_unauthorized(),
    )
    auth_flow = AuthFlow(AuthClientService(api, storage))
    holder["flow"] = auth_flow
    yield auth_flow
    auth_flow.unmount()
    await api.aclose()


class BlockingAuthService:
    """request_otp/verify_otp wait until released."""

    def __init__(self):
        self.release = asyncio.Event()
        self.calls = 0

    async def request_otp(self, phone, country_code=None):
        self.calls += 1
        await self.release.wait()
        return {"phone": phone}

    async def verify_otp(self, phone, otp, user_type="rider"):
        self.calls += 1
        await self.release.wait()
        return {"token": "t", "user": {"id": 1, "is_new_user": False}}


def test_format_local_phone():
    assert format_local_phone("0912 345 678") == "912345678"
    assert format_local_phone("91234567890") == "912345678"
    assert format_local_phone("abc") == ""


async def test_full_onboarding(demo_configs, flow, storage):
    assert await flow.initialize() == AuthState.UNAUTHENTICATED
    assert flow.screen == Screen.PHONE_ENTRY

    assert await flow.submit_phone("0900 000 001")
    assert flow.phone == "+211900000001"
    assert flow.screen == Screen.CODE_ENTRY
    assert flow.demo_hint == "Demo OTP: 123456"
    assert not flow.countdown.can_resend

    assert await flow.enter_code(0, "123456")
    assert flow.auth_state == AuthState.AUTHENTICATED
    assert flow.screen == Screen.PROFILE_SETUP

    assert await flow.complete_profile("Amina", email="amina@example.com")
    assert flow.screen == Screen.HOME
    assert flow.user["first_name"] == "Amina"

    await flow.logout()
    assert flow.screen == Screen.PHONE_ENTRY
    assert flow.auth_state == AuthState.UNAUTHENTICATED
    assert await storage.get_item(AUTH_TOKEN_KEY) is None


async def test_returning_user_goes_home(demo_configs, flow):
    await flow.submit_phone("900000001")
    await flow.enter_code(0, "123456")
    await flow.complete_profile("Amina")
    await flow.logout()

    await flow.submit_phone("900000001")
    await flow.enter_code(0, "123456")
    assert flow.screen == Screen.HOME


async def test_stored_session_restores_on_initialize(demo_configs, flow, storage):
    await flow.submit_phone("900000001")
    await flow.enter_code(0, "123456")

    restarted = AuthFlow(flow.auth_service)
    assert await restarted.initialize() == AuthState.AUTHENTICATED
    assert restarted.screen == Screen.PROFILE_SETUP


async def test_short_phone_is_rejected_locally(flow, sms_gateway):
    assert not await flow.submit_phone("91234")
    assert flow.error == "Please enter a valid phone number"
    assert flow.screen == Screen.PHONE_ENTRY
    assert sms_gateway.sent == []


async def test_wrong_code_clears_boxes(demo_configs, flow):
    await flow.submit_phone("900000001")
    assert not await flow.enter_code(0, "654321")
    assert flow.error_code == "INVALID_OTP"
    assert flow.otp_input.value == ""
    assert flow.screen == Screen.CODE_ENTRY

    assert await flow.enter_code(0, "123456")


async def test_partial_code_is_not_submitted(demo_configs, flow):
    await flow.submit_phone("900000001")
    assert not await flow.enter_code(0, "1")
    assert flow.screen == Screen.CODE_ENTRY


async def test_rate_limited_submit_shows_message(flow):
    for _ in range(5):
        assert await flow.submit_phone("900000001")
    assert not await flow.submit_phone("900000001")
    assert flow.error_code == "RATE_LIMITED"
    assert flow.error == "Too many requests. Please try again later."


async def test_resend_waits_for_countdown(demo_configs, flow):
    await flow.submit_phone("900000001")
    assert not await flow.resend_code()


async def test_resend_after_countdown(demo_configs, app, storage):
    async with WasilApiClient("http://testserver", storage, transport=httpx.ASGITransport(app=app)) as api:
        auth_flow = AuthFlow(AuthClientService(api, storage), countdown=ResendCountdown(seconds=0))
        await auth_flow.submit_phone("900000001")
        assert auth_flow.countdown.can_resend
        assert await auth_flow.resend_code()
        assert auth_flow.demo_hint == "Demo OTP: 123456"
        auth_flow.unmount()


async def test_profile_validation(demo_configs, flow):
    await flow.submit_phone("900000001")
    await flow.enter_code(0, "123456")

    assert not await flow.complete_profile("A")
    assert flow.error == "Please enter your first name"
    assert not await flow.complete_profile("Amina", email="not-an-email")
    assert flow.error == "Please enter a valid email address"
    assert flow.screen == Screen.PROFILE_SETUP

    flow.skip_profile()
    assert flow.screen == Screen.HOME


async def test_rejected_token_returns_to_phone_entry(flow, storage):
    await storage.set_item(AUTH_TOKEN_KEY, "garbage")
    assert await flow.initialize() == AuthState.AUTHENTICATED

    await flow._run('refresh', flow.auth_service.refresh_profile)
    assert flow.auth_state == AuthState.UNAUTHENTICATED
    assert flow.screen == Screen.PHONE_ENTRY


async def test_duplicate_submit_is_ignored():
    service = BlockingAuthService()
    auth_flow = AuthFlow(service)

    first = asyncio.create_task(auth_flow.submit_phone("900000001"))
    await asyncio.sleep(0)
    assert auth_flow.is_busy('send_otp')
    assert not await auth_flow.submit_phone("900000001")

    service.release.set()
    assert await first
    assert service.calls == 1
    auth_flow.unmount()


async def test_result_after_unmount_is_dropped():
    service = BlockingAuthService()
    auth_flow = AuthFlow(service)
    auth_flow.phone = "+211900000001"
    auth_flow.otp_input.change_text(0, "123456")

    pending = asyncio.create_task(auth_flow.verify())
    await asyncio.sleep(0)
    auth_flow.unmount()
    service.release.set()

    assert not await pending
    assert auth_flow.auth_state == AuthState.UNINITIALIZED
    assert auth_flow.screen == Screen.PHONE_ENTRY
