import pytest

from ragsmith.execution import delete_step, insert_step, update_step
from ragsmith.planning import Plan, Step, ToolCall


def _plan(n):
    return Plan([Step(i + 1, f"action {i + 1}", "t") for i in range(n)])


def _numbers(plan):
    return [s.step for s in plan.steps]


class TestDeleteStep:
    def test_deleting_an_executed_step(self):
        plan = _plan(2)
        executed = delete_step(plan, {0}, 0)
        assert _numbers(plan) == [1]
        assert plan.steps[0].action == "action 2"
        assert executed == set()

    def test_indices_after_the_gap_shift_down(self):
        plan = _plan(4)
        executed = delete_step(plan, {0, 2, 3}, 1)
        assert _numbers(plan) == [1, 2, 3]
        assert executed == {0, 1, 2}
        assert [plan.steps[i].action for i in sorted(executed)] == ["action 1", "action 3", "action 4"]

    def test_out_of_range(self):
        with pytest.raises(IndexError):
            delete_step(_plan(1), set(), 3)


class TestInsertStep:
    def test_indices_at_or_after_shift_up(self):
        plan = _plan(3)
        executed = insert_step(plan, {0, 1, 2}, 1, Step(0, "new", "t"))
        assert _numbers(plan) == [1, 2, 3, 4]
        assert plan.steps[1].action == "new"
        assert executed == {0, 2, 3}

    def test_index_is_clamped(self):
        plan = _plan(2)
        insert_step(plan, set(), 99, Step(0, "last", "t"))
        insert_step(plan, set(), -5, Step(0, "first", "t"))
        assert [s.action for s in plan.steps] == ["first", "action 1", "action 2", "last"]
        assert _numbers(plan) == [1, 2, 3, 4]


class TestUpdateStep:
    def test_fields_are_replaced_and_step_is_rerun(self):
        plan = _plan(2)
        executed = update_step(plan, {0, 1}, 1, {
            "action": "changed",
            "step": 40,
            "tool_calls": [{"tool": "read_file", "args": {"path": "a"}}],
        })
        step = plan.steps[1]
        assert step.action == "changed"
        assert step.step == 2
        assert step.tool_calls == [ToolCall("read_file", {"path": "a"})]
        assert executed == {0}

    def test_out_of_range(self):
        with pytest.raises(IndexError):
            update_step(_plan(1), set(), 1, {"action": "x"})


class TestNumbering:
    @pytest.mark.parametrize("ops", [
        [("insert", 0), ("delete", 2), ("insert", 5)],
        [("delete", 0), ("delete", 0), ("insert", 1)],
        [("insert", 3), ("insert", 3), ("delete", 4)],
    ])
    def test_steps_stay_contiguous(self, ops):
        plan = _plan(4)
        executed = {0, 1, 2, 3}
        for op, index in ops:
            if op == "insert":
                executed = insert_step(plan, executed, index, Step(0, "x", "t"))
            else:
                executed = delete_step(plan, executed, index)
            assert _numbers(plan) == list(range(1, len(plan.steps) + 1))
            assert all(0 <= i < len(plan.steps) for i in executed)
