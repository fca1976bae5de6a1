"""Tests for command builders."""

import pytest

from ebb_mcp.errors import ValidationError
from ebb_mcp.protocol.commands import (
    Command,
    StepMode,
    build_command,
    build_absolute_move,
    build_analog_configure,
    build_configure_pin_directions,
    build_configure_user_options,
    build_emergency_stop,
    build_enable_motors,
    build_low_level_move,
    build_low_level_move_time_limited,
    build_memory_read,
    build_memory_write,
    build_pin_input,
    build_pin_output,
    build_pulse_configure,
    build_query_current,
    build_query_general,
    build_reboot,
    build_servo_output,
    build_set_engraver,
    build_set_layer,
    build_set_nickname,
    build_set_node_count,
    build_set_pen_state,
    build_set_pin_direction,
    build_set_servo_power_timeout,
    build_stepper_and_servo_mode_configure,
    build_stepper_move,
    build_stepper_move_mixed_axis,
    build_timed_read,
    build_toggle_pen,
)


def test_command_enum_values():
    """Verify key mnemonics match the firmware reference."""
    assert Command.ENABLE_MOTORS == "EM"
    assert Command.QUERY_GENERAL == "QG"
    assert Command.SERVO_OUTPUT == "S2"
    assert Command.MIXED_AXIS_MOVE == "XM"
    assert Command.VERSION == "V"


def test_step_mode_values():
    """EM step mode values: 1 is 1/16 microstepping, 5 is full steps."""
    assert StepMode.DISABLE == 0
    assert StepMode.DIV16 == 1
    assert StepMode.DIV1 == 5


def test_build_command_joins_with_commas():
    request = build_command(Command.SET_LAYER, 5)
    assert request.text == "SL,5"
    assert request.command is Command.SET_LAYER
    assert request.response_lines == 1
    assert str(request) == "SL,5"


def test_build_enable_motors():
    """Mode values are passed through unchanged."""
    assert build_enable_motors(16, 16).text == "EM,16,16"
    assert build_enable_motors(StepMode.DIV16, StepMode.DIV16).text == "EM,1,1"
    assert build_enable_motors(StepMode.DISABLE, StepMode.DIV2).text == "EM,0,4"


def test_enable_motors_bounds():
    with pytest.raises(ValidationError):
        build_enable_motors(256, 0)
    with pytest.raises(ValidationError):
        build_enable_motors(0, -1)


def test_build_stepper_move_mixed_axis():
    assert build_stepper_move_mixed_axis(1337, 100, 200).text == "XM,1337,100,200"


def test_mixed_axis_floors_fractions():
    """Fractional durations and steps are floored, including negatives."""
    assert build_stepper_move_mixed_axis(500.9, 10.5, -10.5).text == "XM,500,10,-11"


def test_mixed_axis_bounds():
    with pytest.raises(ValidationError):
        build_stepper_move_mixed_axis(0, 1, 1)
    with pytest.raises(ValidationError):
        build_stepper_move_mixed_axis(100, 2**24, 0)
    with pytest.raises(ValidationError):
        build_stepper_move_mixed_axis(100, 0, -(2**24))
    with pytest.raises(ValidationError):
        build_stepper_move_mixed_axis(float("nan"), 0, 0)


def test_build_stepper_move():
    assert build_stepper_move(1337, 100, 200).text == "SM,1337,100,200"
    with pytest.raises(ValidationError):
        build_stepper_move(0, 1, 1)
    with pytest.raises(ValidationError):
        build_stepper_move(100, 2**24, 0)


def test_build_absolute_move():
    assert build_absolute_move(1337, 1000, 2000).text == "HM,1337,1000,2000"
    assert build_absolute_move(1000).text == "HM,1000,0,0"
    with pytest.raises(ValidationError):
        build_absolute_move(1)
    with pytest.raises(ValidationError):
        build_absolute_move(25001)
    with pytest.raises(ValidationError):
        build_absolute_move(1000, 4294968, 0)


def test_build_low_level_move():
    """Clear bits: motor 1 is bit 0, motor 2 is bit 1."""
    request = build_low_level_move(3865471, 60, 1732, False, 0, 0, 0, False)
    assert request.text == "LM,3865471,60,1732,0,0,0,0"
    request = build_low_level_move(1, 2, 3, True, 4, 5, 6, True)
    assert request.text == "LM,1,2,3,4,5,6,3"
    request = build_low_level_move(1, 2, 3, False, 4, 5, 6, True)
    assert request.text == "LM,1,2,3,4,5,6,2"


def test_low_level_move_rejects_negative_rate():
    with pytest.raises(ValidationError):
        build_low_level_move(-1, 0, 0, False, 0, 0, 0, False)


def test_build_low_level_move_time_limited():
    request = build_low_level_move_time_limited(10169, 3865471, 1732, True, 0, 0, True)
    assert request.text == "LT,10169,3865471,1732,0,0,3"


def test_time_limited_move_allows_signed_rates():
    request = build_low_level_move_time_limited(100, -5000, 0, False, 5000, 0, False)
    assert request.text == "LT,100,-5000,0,5000,0,0"
    with pytest.raises(ValidationError):
        build_low_level_move_time_limited(-1, 0, 0, False, 0, 0, False)


def test_build_configure_user_options():
    """One CU command per option, in option order."""
    requests = build_configure_user_options(True, True, False)
    assert [r.text for r in requests] == ["CU,1,1", "CU,2,1", "CU,3,0"]


def test_build_emergency_stop():
    assert build_emergency_stop().text == "ES"
    assert build_emergency_stop(True).text == "ES,1"
    assert build_emergency_stop(True).response_lines == 2


def test_build_pin_commands():
    assert build_set_pin_direction("A", 2, True).text == "PD,A,2,0"
    assert build_set_pin_direction("B", 7, False).text == "PD,B,7,1"
    assert build_pin_input("A", 0).text == "PI,A,0"
    assert build_pin_output("A", 0, True).text == "PO,A,0,1"


@pytest.mark.parametrize("port,pin", [("Z", 0), ("a", 0), ("A", -1), ("A", 8)])
def test_pin_commands_reject_bad_port_or_pin(port, pin):
    with pytest.raises(ValidationError):
        build_set_pin_direction(port, pin, True)
    with pytest.raises(ValidationError):
        build_pin_input(port, pin)
    with pytest.raises(ValidationError):
        build_pin_output(port, pin, True)


def test_build_port_commands():
    assert build_configure_pin_directions(0, 1, 2, 3, 4).text == "C,0,1,2,3,4"
    with pytest.raises(ValidationError):
        build_configure_pin_directions(0, 1, 2, 3, 256)


def test_build_memory_commands():
    assert build_memory_read(1337).text == "MR,1337"
    assert build_memory_write(1337, 123).text == "MW,1337,123"
    for address in (-1, 4096):
        with pytest.raises(ValidationError):
            build_memory_read(address)
        with pytest.raises(ValidationError):
            build_memory_write(address, 0)
    for value in (-1, 256):
        with pytest.raises(ValidationError):
            build_memory_write(0, value)


def test_build_pulse_configure():
    assert build_pulse_configure(1, 2, 3, 4, 5, 6, 7, 8).text == "PC,1,2,3,4,5,6,7,8"
    with pytest.raises(ValidationError):
        build_pulse_configure(1, 2, 3)
    with pytest.raises(ValidationError):
        build_pulse_configure(1, 2, 3, 4, 5, 6, 7, 65536)


def test_build_analog_configure():
    assert build_analog_configure(0, True).text == "AC,0,1"
    assert build_analog_configure(15, False).text == "AC,15,0"
    with pytest.raises(ValidationError):
        build_analog_configure(16, True)


def test_build_timed_read():
    """Mode 0 is digital, 1 is analog."""
    assert build_timed_read(1000, True).text == "T,1000,0"
    assert build_timed_read(1000, False).text == "T,1000,1"
    with pytest.raises(ValidationError):
        build_timed_read(0, True)


def test_build_set_pen_state():
    assert build_set_pen_state(True).text == "SP,0"
    assert build_set_pen_state(False).text == "SP,1"
    assert build_set_pen_state(True, 1000, 0).text == "SP,0,1000,0"


def test_set_pen_state_pin_requires_duration():
    with pytest.raises(ValidationError):
        build_set_pen_state(True, None, 3)
    with pytest.raises(ValidationError):
        build_set_pen_state(True, 1000, 8)
    with pytest.raises(ValidationError):
        build_set_pen_state(True, 0)


def test_build_toggle_pen():
    assert build_toggle_pen().text == "TP"
    assert build_toggle_pen(5000).text == "TP,5000"
    assert build_toggle_pen(5000.7).text == "TP,5000"
    with pytest.raises(ValidationError):
        build_toggle_pen(65536)


def test_build_servo_output():
    assert build_servo_output(12000, 3, 5000, 1337).text == "S2,12000,3,5000,1337"
    with pytest.raises(ValidationError):
        build_servo_output(12000, 25, 5000, 1337)


def test_build_stepper_and_servo_mode_configure():
    assert build_stepper_and_servo_mode_configure(1, 2).text == "SC,1,2"
    assert build_stepper_and_servo_mode_configure(4, 65535).text == "SC,4,65535"
    assert build_stepper_and_servo_mode_configure(10, 0).text == "SC,10,0"


@pytest.mark.parametrize("index,value", [(3, 0), (1, 3), (4, 0), (8, 25), (9, 0), (13, 2)])
def test_stepper_and_servo_mode_configure_rejects(index, value):
    with pytest.raises(ValidationError):
        build_stepper_and_servo_mode_configure(index, value)


def test_build_set_engraver():
    assert build_set_engraver(True, 123, True).text == "SE,1,123,1"
    with pytest.raises(ValidationError):
        build_set_engraver(True, 1024, True)


def test_build_scalar_setters():
    assert build_set_layer(125).text == "SL,125"
    assert build_set_node_count(123).text == "SN,123"
    assert build_set_servo_power_timeout(1000, True).text == "SR,1000,1"
    with pytest.raises(ValidationError):
        build_set_layer(128)
    with pytest.raises(ValidationError):
        build_set_node_count(2**32)


def test_build_set_nickname():
    assert build_set_nickname("MyCoolRobot").text == "ST,MyCoolRobot"
    with pytest.raises(ValidationError):
        build_set_nickname("x" * 17)
    with pytest.raises(ValidationError):
        build_set_nickname("a,b")


def test_bool_is_not_an_integer():
    with pytest.raises(ValidationError):
        build_set_layer(True)


def test_validation_error_is_value_error():
    """Callers catching ValueError still see encoder rejections."""
    with pytest.raises(ValueError):
        build_set_layer(-1)


def test_reply_line_counts():
    assert build_query_general().response_lines == 1
    assert build_query_current().response_lines == 2
    assert build_reboot().response_lines == 0
