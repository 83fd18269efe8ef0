import datetime

import pytest
from dbroutine.params import ParameterSpec, RoutineSpec
from dbroutine.sql import cast_for, make_argument_list, qualify, quote_identifier


def test_quote_identifier():
    """Test identifier quoting and escaping"""
    assert quote_identifier('users') == '"users"'
    assert quote_identifier('Mixed Case') == '"Mixed Case"'
    assert quote_identifier('a"b') == '"a""b"'

    with pytest.raises(ValueError):
        quote_identifier('users', dialect='oracle')


def test_qualify():
    """Test routine name qualification"""
    assert qualify(RoutineSpec('is_exist_users')) == '"is_exist_users"'
    assert qualify(RoutineSpec('is_exist_users', schema='test_program_unit')) == \
        '"test_program_unit"."is_exist_users"'
    assert qualify(RoutineSpec('f', schema='s', catalog='c')) == '"c"."s"."f"'
    assert qualify(RoutineSpec('f', catalog='c')) == '"f"'


def test_make_argument_list():
    """Test placeholders with declared casts"""
    specs = [ParameterSpec('name', 'varchar'), ParameterSpec('comment')]
    assert make_argument_list(2, specs) == '%s::varchar, %s'
    assert make_argument_list(3, specs) == '%s::varchar, %s, %s'
    assert make_argument_list(1) == '%s'
    assert make_argument_list(0, specs) == ''
    assert make_argument_list(1, placeholder='?') == '?'


@pytest.mark.parametrize(('wire_type', 'cast'), [
    (datetime.date, '::date'),
    (datetime.time, '::time'),
    (datetime.datetime, '::timestamp'),
    (object, ''),
    (int, ''),
])
def test_cast_for(wire_type, cast):
    """Test the cast used for each requested wire type"""
    assert cast_for(wire_type) == cast


def test_routine_spec_properties():
    """Test routine naming helpers"""
    spec = RoutineSpec('get_2_first_user', schema='test_program_unit')
    assert spec.qualified_name == 'test_program_unit.get_2_first_user'
    assert spec.kind == 'procedure'
    assert RoutineSpec('is_exist_users', is_function=True).kind == 'function'


if __name__ == '__main__':
    __import__('pytest').main([__file__])
