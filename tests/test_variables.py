from datetime import date

from guided_workflow.repositories.variables import InMemoryVariableSnapshotRepository
from guided_workflow.state.variables import VariableScope, VariableStore, format_value


def test_names_are_case_insensitive():
    store = VariableStore()
    store.set_variable("CustomerName", "Bob")

    assert store.get_variable("customername") == "Bob"
    assert store.get_variable("CUSTOMERNAME") == "Bob"


def test_lookup_precedence_system_workflow_customer():
    store = VariableStore()
    store.set_variable("x", "customer", VariableScope.CUSTOMER)
    assert store.get_variable("x") == "customer"

    store.set_variable("x", "workflow", VariableScope.WORKFLOW)
    assert store.get_variable("x") == "workflow"

    store.set_variable("x", "system", VariableScope.SYSTEM)
    assert store.get_variable("x") == "system"
    assert store.get_variable("x", VariableScope.CUSTOMER) == "customer"


def test_dynamic_today_and_now():
    store = VariableStore()
    assert store.get_variable("today") == date.today().isoformat()
    assert store.get_variable("now").startswith(date.today().isoformat())

    store.set_variable("today", "frozen")
    assert store.get_variable("today") == "frozen"


def test_interpolation_both_token_forms():
    store = VariableStore()
    store.set_variable("name", "Bob")

    assert store.interpolate("Hi ~name~ / ~#name#~") == "Hi Bob / Bob"


def test_unresolved_tokens_are_left_verbatim():
    store = VariableStore()
    assert store.interpolate("Hello ~nobody~ and ~#ghost#~") == "Hello ~nobody~ and ~#ghost#~"
    assert store.interpolate(None) == ""


def test_interpolation_is_idempotent():
    store = VariableStore()
    store.set_variable("plan", "Gold")
    store.set_variable("active", True)

    once = store.interpolate("Plan ~plan~ active=~active~ missing=~x~")
    assert once == "Plan Gold active=true missing=~x~"
    assert store.interpolate(once) == once


def test_value_formatting():
    assert format_value(True) == "true"
    assert format_value(False) == "false"
    assert format_value(["a", "b"]) == "a,b"
    assert format_value(3.0) == "3"
    assert format_value(None) == ""


def test_clear_variables_scopes():
    store = VariableStore()
    store.set_variable("s", 1, VariableScope.SYSTEM)
    store.set_variable("w", 2, VariableScope.WORKFLOW)
    store.set_variable("c", 3, VariableScope.CUSTOMER)

    store.clear_variables(VariableScope.CUSTOMER)
    assert store.get_variable("c") is None
    assert store.get_variable("w") == 2

    store.clear_variables()
    store.clear_variables()
    assert store.get_variable("w") is None
    assert store.get_variable("s") == 1


def test_system_variables_seeded():
    store = VariableStore()
    store.init_system_variables("int-1", "wf-1", "agent7")

    assert store.get_variable("InteractionGUID") == "int-1"
    assert store.get_variable("WorkflowGUID") == "wf-1"
    assert store.get_variable("LoggedInUserName") == "agent7"


def test_snapshot_restore_and_clear_all():
    repository = InMemoryVariableSnapshotRepository()

    store = VariableStore()
    store.bind_snapshots(repository, "session:1")
    store.set_variable("accountnumber", "12345678")
    store.set_variable("tier", "gold", VariableScope.CUSTOMER)
    store.set_variable("interactionguid", "abc", VariableScope.SYSTEM)

    reloaded = VariableStore()
    reloaded.bind_snapshots(repository, "session:1")
    assert reloaded.restore() is True
    assert reloaded.get_variable("accountnumber") == "12345678"
    assert reloaded.get_variable("tier") == "gold"
    # System values are never persisted
    assert reloaded.get_variable("interactionguid") is None

    reloaded.clear_all_variables()
    assert repository.load("session:1") is None
    assert reloaded.get_variable("accountnumber") is None


def test_list_variables():
    store = VariableStore()
    store.set_variable("a", 1)
    store.set_variable("b", 2, VariableScope.CUSTOMER)

    listed = {(v.name, v.scope) for v in store.list_variables()}
    assert listed == {("a", VariableScope.WORKFLOW), ("b", VariableScope.CUSTOMER)}
