"""
Tests for the routine handle: shape checks, arguments and each entry point.
"""
import datetime

import dbroutine as db
import pytest
from dbroutine import ParameterSpec, Routine
from dbroutine.exceptions import AdapterError, BindingError, ConfigurationError
from dbroutine.exceptions import InvocationShapeError, ValidationError
from dbroutine.faults import Fault

from tests.fixtures.models import Counted, Get2FirstUser, PartlyMarked, UserRow


def test_adapter_required():
    """Test that a handle cannot be built without an adapter"""
    with pytest.raises(ValueError):
        Routine(None, 'is_exist_users', model=bool, is_function=True)


def test_configuration_error_at_construction(fake_adapter):
    """Test that a bad model fails when the handle is built"""
    adapter = fake_adapter()
    with pytest.raises(ConfigurationError):
        Routine(adapter, 'broken', model=PartlyMarked, is_function=True)
    assert adapter.received == []


def test_routine_spec(fake_adapter):
    """Test the routine identity handed to the adapter"""
    adapter = fake_adapter()
    handle = Routine(adapter, 'add_user', ['name', ParameterSpec('comment', 'varchar')],
                     schema='test_program_unit', catalog='test_db')
    handle.call_no_output('Foo Bar', 'Comment')

    op, spec, params = adapter.received[0]
    assert op == 'bare'
    assert spec.name == 'add_user'
    assert spec.schema == 'test_program_unit'
    assert spec.catalog == 'test_db'
    assert spec.is_function is False
    assert spec.params == (ParameterSpec('name'), ParameterSpec('comment', 'varchar'))
    assert spec.qualified_name == 'test_db.test_program_unit.add_user'
    assert params == ['Foo Bar', 'Comment']
    assert adapter.calls == 1


@pytest.mark.parametrize(('model', 'allowed'), [
    (None, 'call_no_output'),
    (bool, 'call_scalar'),
    (UserRow, 'call_cursor_list'),
])
def test_shape_mismatch_does_not_touch_adapter(fake_adapter, model, allowed):
    """Test that every entry point except the matching one raises before execution"""
    adapter = fake_adapter()
    handle = Routine(adapter, 'routine', model=model, is_function=True)
    entries = ['call_no_output', 'call_scalar', 'call_cursor_list',
               'call_cursor_first', 'call_multi_output']
    if allowed == 'call_cursor_list':
        entries.remove('call_cursor_first')
    entries.remove(allowed)

    for entry in entries:
        with pytest.raises(InvocationShapeError):
            getattr(handle, entry)()

    assert adapter.received == []
    assert adapter.calls == 0


def test_shape_error_message(fake_adapter):
    """Test that the shape error names both shapes"""
    handle = Routine(fake_adapter(), 'is_exist_users', model=bool, is_function=True)
    with pytest.raises(InvocationShapeError, match='a single scalar value.*a single cursor'):
        handle.call_cursor_list()


def test_call_scalar_boolean(fake_adapter):
    """Test a boolean function result without input parameters"""
    adapter = fake_adapter(scalar=True)
    handle = Routine(adapter, 'is_exist_users', model=bool, is_function=True,
                     schema='test_program_unit')
    assert handle.call_scalar() is True
    assert adapter.wire_types == [object]


def test_call_scalar_coerces(fake_adapter):
    """Test that a scalar result is coerced to the model type"""
    adapter = fake_adapter(scalar='1')
    handle = Routine(adapter, 'get_role_id_by_name', ['role_name'], model=int)
    assert handle.call_scalar('admin') == 1
    assert adapter.received[0][2] == ['admin']


def test_call_scalar_requests_calendar_type(fake_adapter):
    """Test that calendar results are requested as their own wire type"""
    adapter = fake_adapter(scalar=datetime.datetime(2021, 7, 8))
    handle = Routine(adapter, 'last_login', model=datetime.datetime, is_function=True)
    assert handle.call_scalar() == datetime.datetime(2021, 7, 8)
    assert adapter.wire_types == [datetime.datetime]


def test_call_scalar_null(fake_adapter):
    """Test that a null scalar result is None"""
    handle = Routine(fake_adapter(scalar=None), 'get_name_user_by_id', ['user_id'],
                     model=str, is_function=True)
    assert handle.call_scalar(99) is None


def test_call_scalar_coercion_failure(fake_adapter):
    """Test that an unconvertible scalar raises BindingError"""
    handle = Routine(fake_adapter(scalar='abc'), 'count_users', model=int, is_function=True)
    with pytest.raises(BindingError) as exc_info:
        handle.call_scalar()
    assert exc_info.value.fault is Fault.COERCION_FAILED


def test_call_cursor_list(fake_adapter):
    """Test binding every row of a procedure cursor"""
    adapter = fake_adapter(rows=[
        {'id': 1, 'name': 'Nikita Konstantinovich Chistousov'},
        {'id': 2, 'name': 'Vasily Nikolaevich Shalashov'},
    ])
    handle = Routine(adapter, 'get_2_first_user', ['create_date_more'], model=Get2FirstUser)
    rows = handle.call_cursor_list(datetime.datetime(2020, 1, 1))

    assert rows == [
        Get2FirstUser(1, 'Nikita Konstantinovich Chistousov'),
        Get2FirstUser(2, 'Vasily Nikolaevich Shalashov'),
    ]
    assert adapter.mapper_names == [['USERS']]


def test_call_cursor_list_empty(fake_adapter):
    """Test that an empty cursor gives an empty list"""
    handle = Routine(fake_adapter(rows=[]), 'get_users', model=UserRow, is_function=True)
    assert handle.call_cursor_list() == []
    assert handle.call_cursor_first() is None


def test_call_cursor_first(fake_adapter):
    """Test that the first bound row is returned"""
    adapter = fake_adapter(rows=[{'id': 1, 'name': 'Alice'}, {'id': 2, 'name': 'Bob'}])
    handle = Routine(adapter, 'get_users', model=UserRow, is_function=True)
    assert handle.call_cursor_first() == UserRow(1, 'Alice')


def test_binding_fault_aborts_call(fake_adapter):
    """Test that a row fault aborts the call and no rows are returned"""
    Counted.created = 0
    adapter = fake_adapter(rows=[{'value': 1}, {'value': 'bad'}, {'value': 3}, {'value': 4}])
    handle = Routine(adapter, 'get_values', model=Counted, is_function=True)

    with pytest.raises(BindingError) as exc_info:
        handle.call_cursor_list()
    assert exc_info.value.fault is Fault.COERCION_FAILED
    assert Counted.created == 2


def test_swallowed_fault_still_raises(fake_adapter):
    """Test that a fault hidden by the adapter is raised after it returns"""
    Counted.created = 0
    adapter = fake_adapter(rows=[{'value': 'bad'}, {'value': 2}], swallow=True)
    handle = Routine(adapter, 'get_values', model=Counted, is_function=True)

    with pytest.raises(BindingError) as exc_info:
        handle.call_cursor_list()
    assert exc_info.value.fault is Fault.COERCION_FAILED
    assert Counted.created == 1


def test_wrapped_fault_raises_binding_error(fake_adapter):
    """Test that a fault wrapped by the adapter surfaces as the binding error"""
    adapter = fake_adapter(rows=[{'value': 'bad'}], wrap=True)
    handle = Routine(adapter, 'get_values', model=Counted, is_function=True)
    with pytest.raises(BindingError) as exc_info:
        handle.call_cursor_list()
    assert not isinstance(exc_info.value, AdapterError)
    assert exc_info.value.fault is Fault.COERCION_FAILED


def test_fault_does_not_leak_into_next_call(fake_adapter):
    """Test that a failed call leaves the handle usable"""
    adapter = fake_adapter(rows=[{'id': 'bad'}])
    handle = Routine(adapter, 'get_users', model=UserRow, is_function=True)
    with pytest.raises(BindingError):
        handle.call_cursor_list()

    adapter.rows = [{'id': 1, 'name': 'Alice'}]
    assert handle.call_cursor_list() == [UserRow(1, 'Alice')]


def test_repeated_calls_return_fresh_instances(fake_adapter):
    """Test that the same handle gives equal but distinct results"""
    adapter = fake_adapter(rows=[{'id': 1, 'name': 'Alice'}])
    handle = Routine(adapter, 'get_users', model=UserRow, is_function=True)
    first, second = handle.call_cursor_list(), handle.call_cursor_list()
    assert first == second
    assert first[0] is not second[0]
    assert adapter.calls == 2


def test_keyword_arguments(fake_adapter):
    """Test that keyword arguments are ordered by the declared parameters"""
    adapter = fake_adapter()
    handle = Routine(adapter, 'add_user', ['name', 'comment'])
    handle.call_no_output(comment='Comment', name='Foo Bar')
    handle.call_no_output('Foo Bar', comment='Comment')
    assert [received[2] for received in adapter.received] == [
        ['Foo Bar', 'Comment'], ['Foo Bar', 'Comment']]


@pytest.mark.parametrize(('args', 'kwargs', 'message'), [
    (('a', 'b', 'c'), {}, 'takes 2 argument'),
    (('a',), {}, 'Missing argument'),
    ((), {'name': 'a', 'other': 'b'}, 'Unknown argument'),
    (('a',), {'name': 'a', 'comment': 'b'}, 'given twice'),
])
def test_argument_errors(fake_adapter, args, kwargs, message):
    """Test that argument errors raise before the adapter is touched"""
    adapter = fake_adapter()
    handle = Routine(adapter, 'add_user', ['name', 'comment'])
    with pytest.raises(ValidationError, match=message):
        handle.call_no_output(*args, **kwargs)
    assert adapter.received == []


def test_keywords_need_declared_parameters(fake_adapter):
    """Test that keyword arguments require declared parameter names"""
    handle = Routine(fake_adapter(), 'insert_and_delete')
    with pytest.raises(ValidationError, match='declares no parameter names'):
        handle.call_no_output(name='x')


def test_undeclared_parameters_accept_any_count(fake_adapter):
    """Test that positional arguments pass through when none are declared"""
    adapter = fake_adapter()
    Routine(adapter, 'add_user').call_no_output('Foo Bar', 'Comment')
    assert adapter.received[0][2] == ['Foo Bar', 'Comment']


def test_execute_dispatches_by_shape(fake_adapter):
    """Test that execute and calling the handle pick the bound entry point"""
    adapter = fake_adapter(scalar='Nikita', rows=[{'id': 1, 'name': 'Alice'}])
    assert Routine(adapter, 'noop').execute() is None
    assert Routine(adapter, 'get_name', model=str, is_function=True)() == 'Nikita'
    assert Routine(adapter, 'get_users', model=UserRow,
                   is_function=True).execute() == [UserRow(1, 'Alice')]
    assert [received[0] for received in adapter.received] == ['bare', 'scalar', 'cursor']


def test_module_facades(fake_adapter):
    """Test the module-level functions mirroring the handle methods"""
    adapter = fake_adapter(scalar=True, rows=[{'id': 1, 'name': 'Alice'}])
    exists = db.routine(adapter, 'is_exist_users', model=bool, is_function=True)
    users = db.routine(adapter, 'get_users', model=UserRow, is_function=True)
    noop = db.routine(adapter, 'insert_and_delete')

    assert db.call_scalar(exists) is True
    assert db.call_cursor_list(users) == [UserRow(1, 'Alice')]
    assert db.call_cursor_first(users) == UserRow(1, 'Alice')
    assert db.call_no_output(noop) is None
    assert exists.shape is db.Shape.SCALAR
    assert 'SCALAR' in repr(exists)


if __name__ == '__main__':
    __import__('pytest').main([__file__])
