from app.client.otp_input import OTPInput


def test_typing_moves_focus_forward():
    otp = OTPInput()
    otp.change_text(0, "1")
    otp.change_text(1, "2")
    assert otp.value == "12"
    assert otp.focused_index == 2
    assert not otp.is_complete


def test_non_digits_are_ignored():
    otp = OTPInput()
    otp.change_text(0, "a")
    assert otp.value == ""
    assert otp.focused_index == 0


def test_paste_fills_from_box():
    otp = OTPInput()
    otp.change_text(0, "12-34 56")
    assert otp.value == "123456"
    assert otp.is_complete
    assert otp.focused_index == 5


def test_paste_midway_stops_at_last_box():
    otp = OTPInput()
    otp.change_text(4, "987")
    assert otp.digits == ["", "", "", "", "9", "8"]


def test_backspace_on_empty_box_moves_back():
    otp = OTPInput()
    otp.change_text(0, "1")
    otp.change_text(1, "2")
    otp.backspace(2)
    assert otp.focused_index == 1
    assert otp.value == "12"
    otp.backspace(1)
    assert otp.value == "1"


def test_clear():
    otp = OTPInput()
    otp.change_text(0, "123456")
    otp.clear()
    assert otp.value == ""
    assert otp.focused_index == 0
