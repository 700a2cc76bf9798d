from app.services.otp_store import OTPStore

PHONE = "+211900000001"


def test_put_then_matches(otp_store):
    otp_store.put(PHONE, "654321")
    assert otp_store.matches(PHONE, "654321") is True
    assert otp_store.matches(PHONE, "000000") is False


def test_code_is_stored_hashed(otp_store, fake_redis):
    otp_store.put(PHONE, "654321")
    stored = otp_store.get(PHONE)
    assert stored != "654321"
    assert stored == otp_store.hash_otp("654321")
    assert all("654321" not in str(value) for value in fake_redis.values.values())


def test_absent_code_reports_none(otp_store):
    assert otp_store.get(PHONE) is None
    assert otp_store.matches(PHONE, "123456") is None


def test_new_put_overwrites_previous_code(otp_store):
    otp_store.put(PHONE, "111111")
    otp_store.put(PHONE, "222222")
    assert otp_store.matches(PHONE, "111111") is False
    assert otp_store.matches(PHONE, "222222") is True


def test_delete_is_idempotent(otp_store):
    otp_store.put(PHONE, "111111")
    assert otp_store.delete(PHONE) is True
    assert otp_store.delete(PHONE) is False
    assert otp_store.get(PHONE) is None


def test_redis_entry_expires_after_ttl(otp_store, clock):
    otp_store.put(PHONE, "111111")
    clock.advance(299)
    assert otp_store.get(PHONE) is not None
    clock.advance(1)
    assert otp_store.get(PHONE) is None


def test_memory_fallback_when_redis_unavailable_at_startup(clock):
    store = OTPStore(None, ttl_seconds=300, clock=clock)
    assert store.backend == "memory"

    store.put(PHONE, "333333")
    assert store.matches(PHONE, "333333") is True


def test_memory_fallback_checks_clock_on_read(clock):
    store = OTPStore(None, ttl_seconds=300, clock=clock)
    store.put(PHONE, "333333")
    clock.advance(300)
    # nothing evicted the entry, the read itself must treat it as gone
    assert store.get(PHONE) is None
    assert store.matches(PHONE, "333333") is None


def test_runtime_redis_failure_switches_to_memory(otp_store, fake_redis):
    assert otp_store.backend == "redis"
    fake_redis.fail = True

    otp_store.put(PHONE, "444444")
    assert otp_store.backend == "memory"
    assert otp_store.matches(PHONE, "444444") is True


def test_disconnected_wrapper_is_not_used(fake_redis, clock):
    fake_redis.connected = False
    store = OTPStore(fake_redis, clock=clock)
    store.put(PHONE, "555555")
    assert store.backend == "memory"
    assert fake_redis.values == {}


def test_consume_removes_matching_code_once(otp_store):
    otp_store.put(PHONE, "123456")
    assert otp_store.consume(PHONE, "000000") is False
    assert otp_store.get(PHONE) is not None
    assert otp_store.consume(PHONE, "123456") is True
    assert otp_store.consume(PHONE, "123456") is None


def test_consume_loses_when_code_is_taken_between_read_and_delete(otp_store, fake_redis):
    otp_store.put(PHONE, "123456")
    real_get = fake_redis.get

    def get_then_lose_race(key):
        value = real_get(key)
        # a concurrent verify deletes the code right after this read
        fake_redis.values.pop(key, None)
        return value

    fake_redis.get = get_then_lose_race
    assert otp_store.consume(PHONE, "123456") is None


def test_memory_consume_is_single_use(clock):
    store = OTPStore(None, ttl_seconds=300, clock=clock)
    store.put(PHONE, "123456")
    assert store.consume(PHONE, "123456") is True
    assert store.consume(PHONE, "123456") is None


def test_memory_put_sweeps_expired_codes(clock):
    store = OTPStore(None, ttl_seconds=300, clock=clock)
    for i in range(20):
        store.put(f"+21190000{i:04d}", "123456")
    clock.advance(300)
    store.put(PHONE, "654321")
    assert list(store._memory) == [store.get_cache_key(PHONE)]
