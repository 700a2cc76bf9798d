import os
import tempfile

# Must be set before app modules read their settings
os.environ["LOG_DIR"] = tempfile.mkdtemp(prefix="wasil-auth-logs-")
os.environ["FIREHOSE_ENABLED"] = "false"
os.environ["AUDIT_LOGGING_ENABLED"] = "false"
os.environ["SENTRY_ENABLED"] = "false"
os.environ["SLACK_WEBHOOK_URL"] = ""
os.environ["SMS_PROVIDER"] = "log"

import pytest
import redis
from fastapi.testclient import TestClient

from app.config.settings import AuthConfigs
from app.connections.database import build_engine, build_session_factory, create_tables
from app.main import create_app
from app.repository.users import UserRepository
from app.services.auth_service import AuthService
from app.services.otp_store import OTPStore
from app.services.rate_limiter import RateLimiter
from app.services.token_service import TokenIssuer

TEST_SECRET = "test-secret-do-not-use"


class FakeClock:
    def __init__(self, start: float = 1_700_000_000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakePipeline:
    def __init__(self, wrapper):
        self.wrapper = wrapper
        self.ops = []

    def zremrangebyscore(self, key, low, high):
        self.ops.append(("zremrangebyscore", key, low, high))
        return self

    def zadd(self, key, mapping):
        self.ops.append(("zadd", key, mapping))
        return self

    def zcard(self, key):
        self.ops.append(("zcard", key))
        return self

    def expire(self, key, seconds):
        self.ops.append(("expire", key, seconds))
        return self

    def execute(self):
        self.wrapper.check()
        results = []
        for op, key, *args in self.ops:
            zset = self.wrapper.zsets.setdefault(key, {})
            if op == "zremrangebyscore":
                low, high = args
                doomed = [m for m, score in zset.items() if low <= score <= high]
                for member in doomed:
                    del zset[member]
                results.append(len(doomed))
            elif op == "zadd":
                zset.update(args[0])
                results.append(len(args[0]))
            elif op == "zcard":
                results.append(len(zset))
            else:
                results.append(True)
        return results


class FakeRedisWrapper:
    """Stands in for RedisJSONWrapper: TTL'd values and sorted sets on a fake clock."""

    def __init__(self, clock, connected: bool = True):
        self.clock = clock
        self.connected = connected
        self.values = {}
        self.zsets = {}
        self.fail = False

    def check(self):
        if self.fail:
            raise redis.exceptions.ConnectionError("redis down")

    def set_with_ttl(self, key, data, ttl_seconds):
        self.check()
        self.values[key] = (data, self.clock() + ttl_seconds)

    def get(self, key):
        self.check()
        entry = self.values.get(key)
        if entry is None:
            return None
        data, expires_at = entry
        if expires_at <= self.clock():
            del self.values[key]
            return None
        return data

    def delete(self, key):
        self.check()
        return self.values.pop(key, None) is not None

    def delete_if_equals(self, key, data):
        self.check()
        entry = self.values.get(key)
        if entry is None or entry[0] != data:
            return False
        del self.values[key]
        return True


    def pipeline(self, transaction: bool = True):
        return FakePipeline(self)

    def zrem(self, key, member):
        self.check()
        return self.zsets.get(key, {}).pop(member, None) is not None

    def zrange_withscores(self, key, start=0, end=0):
        self.check()
        ordered = sorted(self.zsets.get(key, {}).items(), key=lambda item: item[1])
        return ordered[start:end + 1]


class RecordingSMSGateway:
    name = "recording"

    def __init__(self, succeed: bool = True):
        self.sent = []
        self.succeed = succeed

    def send_sms(self, phone_number, message):
        self.sent.append((phone_number, message))
        if self.succeed:
            return {'success': True, 'message': 'SMS sent successfully'}
        return {'success': False, 'message': 'Failed to send SMS'}


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def configs():
    cfg = AuthConfigs()
    cfg.DEMO_MODE = False
    cfg.DEBUG = True
    cfg.AUTO_CREATE_TABLES = True
    cfg.JWT_SECRET = TEST_SECRET
    cfg.DEFAULT_COUNTRY_CODE = "+211"
    cfg.OTP_EXPIRY_SECONDS = 300
    cfg.RATE_LIMIT_MAX_REQUESTS = 5
    cfg.RATE_LIMIT_WINDOW_SECONDS = 900
    cfg.ALLOWED_ORIGINS = ["*"]
    return cfg


@pytest.fixture
def demo_configs(configs):
    configs.DEMO_MODE = True
    configs.DEMO_OTP = "123456"
    return configs


@pytest.fixture
def fake_redis(clock):
    return FakeRedisWrapper(clock)


@pytest.fixture
def engine():
    engine = build_engine("sqlite://")
    create_tables(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return build_session_factory(engine)


@pytest.fixture
def users(session_factory):
    return UserRepository(session_factory)


@pytest.fixture
def otp_store(fake_redis, clock):
    return OTPStore(fake_redis, ttl_seconds=300, clock=clock)


@pytest.fixture
def rate_limiter(fake_redis, clock):
    return RateLimiter(fake_redis, max_requests=5, window_seconds=900, clock=clock)


@pytest.fixture
def token_issuer(clock):
    return TokenIssuer(TEST_SECRET, expiry_days=7, clock=clock)


@pytest.fixture
def sms_gateway():
    return RecordingSMSGateway()


@pytest.fixture
def auth_service(otp_store, users, token_issuer, rate_limiter, sms_gateway, configs):
    return AuthService(otp_store, users, token_issuer, rate_limiter, sms_gateway, configs)


@pytest.fixture
def app(configs, otp_store, rate_limiter, engine, session_factory, sms_gateway, token_issuer, clock):
    return create_app(
        configs=configs,
        otp_store=otp_store,
        rate_limiter=rate_limiter,
        engine=engine,
        session_factory=session_factory,
        sms_gateway=sms_gateway,
        token_issuer=token_issuer,
        clock=clock,
    )


@pytest.fixture
def client(app):
    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture
def demo_client(demo_configs, client):
    # configs fixture is shared, so demo mode applies to the same app
    return client
