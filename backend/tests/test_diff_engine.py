# backend/tests/test_diff_engine.py
# 功能: 测试字符级编辑脚本（最小编辑、语义清理、确定性、对称性、可还原）
# 主要函数: test_*

"""
差异引擎测试
运行: python -m pytest tests/test_diff_engine.py -v
"""

import random

import pytest

from core.diff_engine import DiffOp, DiffSpan, compute_diff


PAIRS = [
    ("foo\nbar\n", "foo\nbaz\n"),
    ("", "hello\n"),
    ("hello\n", ""),
    ("The quick brown fox.", "The quick red fox jumps."),
    ("line one\nline two\nline three\n", "line one\nline 2\nline three\nline four\n"),
    ("abcdefghij", "xbcdyfghiz"),
    ("def f():\n    return 1\n", "def f(x):\n    # doc\n    return x + 1\n"),
    ("中文内容\n第二行\n", "中文内容\n第三行\n"),
    ("a\r\nb\r\n", "a\r\nc\r\n"),
    ("same", "same"),
]


def _old_text(spans):
    return "".join(s.text for s in spans if s.op != DiffOp.INSERT)


def _new_text(spans):
    return "".join(s.text for s in spans if s.op != DiffOp.DELETE)


_SWAP = {DiffOp.EQUAL: DiffOp.EQUAL, DiffOp.INSERT: DiffOp.DELETE, DiffOp.DELETE: DiffOp.INSERT}


def _swapped(spans):
    """删除/插入互换，相邻的一对重新按「删除在前」排列"""
    result = []
    for span in spans:
        span = DiffSpan(_SWAP[span.op], span.text)
        if span.op == DiffOp.DELETE and result and result[-1].op == DiffOp.INSERT:
            result.insert(len(result) - 1, span)
        else:
            result.append(span)
    return result


def _assert_canonical(spans):
    # 相邻片段操作不同，插入后面不紧跟删除
    for prev, cur in zip(spans, spans[1:]):
        assert prev.op != cur.op
        assert not (prev.op == DiffOp.INSERT and cur.op == DiffOp.DELETE)


def _random_text(rng):
    return "".join(rng.choice("ab \n") for _ in range(rng.randint(0, 10)))


class TestEditScript:
    """测试编辑脚本本身"""

    def test_single_character_change(self):
        assert compute_diff("abc", "abd") == [
            DiffSpan(DiffOp.EQUAL, "ab"),
            DiffSpan(DiffOp.DELETE, "c"),
            DiffSpan(DiffOp.INSERT, "d"),
        ]

    def test_pure_insertion(self):
        assert compute_diff("ac", "abc") == [
            DiffSpan(DiffOp.EQUAL, "a"),
            DiffSpan(DiffOp.INSERT, "b"),
            DiffSpan(DiffOp.EQUAL, "c"),
        ]

    def test_contained_text(self):
        assert compute_diff("bcd", "abcde") == [
            DiffSpan(DiffOp.INSERT, "a"),
            DiffSpan(DiffOp.EQUAL, "bcd"),
            DiffSpan(DiffOp.INSERT, "e"),
        ]

    def test_isolated_equality_folded_into_edit(self):
        # "删 a / 等 b / 删 c" 中孤立的 b 不单独显示
        assert compute_diff("abc", "b") == [
            DiffSpan(DiffOp.DELETE, "abc"),
            DiffSpan(DiffOp.INSERT, "b"),
        ]

    def test_edit_shifted_to_word_boundary(self):
        spans = compute_diff("The cat came.", "The cat cat came.")
        inserted = [s.text for s in spans if s.op == DiffOp.INSERT]
        assert inserted == ["cat "]

    def test_no_empty_spans(self):
        for a, b in PAIRS:
            if a == b:
                continue
            assert all(s.text for s in compute_diff(a, b))


class TestEmptyInputs:
    """空字符串"""

    def test_both_empty(self):
        assert compute_diff("", "") == [DiffSpan(DiffOp.EQUAL, "")]

    def test_insert_everything(self):
        assert compute_diff("", "abc") == [DiffSpan(DiffOp.INSERT, "abc")]

    def test_delete_everything(self):
        assert compute_diff("abc", "") == [DiffSpan(DiffOp.DELETE, "abc")]


class TestProperties:
    """确定性、恒等、对称、可还原"""

    @pytest.mark.parametrize("a,b", PAIRS)
    def test_deterministic(self, a, b):
        assert compute_diff(a, b) == compute_diff(a, b)

    @pytest.mark.parametrize("text", ["", "x", "foo\nbar\n", "中文\n"])
    def test_identity_has_no_edits(self, text):
        spans = compute_diff(text, text)
        assert all(s.op == DiffOp.EQUAL for s in spans)

    @pytest.mark.parametrize("a,b", PAIRS)
    def test_reconstruction(self, a, b):
        spans = compute_diff(a, b)
        assert _old_text(spans) == a
        assert _new_text(spans) == b

    @pytest.mark.parametrize("a,b", PAIRS + [("abc", "abd"), ("ac", "abc"), ("abc", "b"), ("ab", "ba")])
    def test_swapping_inputs_inverts_operations(self, a, b):
        assert compute_diff(b, a) == _swapped(compute_diff(a, b))

    def test_two_character_swap(self):
        assert compute_diff("ab", "ba") == [
            DiffSpan(DiffOp.DELETE, "a"),
            DiffSpan(DiffOp.EQUAL, "b"),
            DiffSpan(DiffOp.INSERT, "a"),
        ]
        assert compute_diff("ba", "ab") == [
            DiffSpan(DiffOp.INSERT, "a"),
            DiffSpan(DiffOp.EQUAL, "b"),
            DiffSpan(DiffOp.DELETE, "a"),
        ]

    def test_random_pairs(self):
        rng = random.Random(20240518)
        for _ in range(3000):
            a = _random_text(rng)
            b = _random_text(rng)
            forward = compute_diff(a, b)

            assert _old_text(forward) == a
            assert _new_text(forward) == b
            assert compute_diff(a, b) == forward
            assert compute_diff(b, a) == _swapped(forward), (a, b)
            assert all(s.op == DiffOp.EQUAL for s in compute_diff(a, a))
            if a != b:
                assert all(s.text for s in forward)
            _assert_canonical(forward)

    def test_larger_input_reconstructs(self):
        a = "".join(f"line {i}\n" for i in range(300))
        b = "".join(f"line {i}\n" for i in range(300) if i % 7) + "tail\n"
        spans = compute_diff(a, b)
        assert _old_text(spans) == a
        assert _new_text(spans) == b
