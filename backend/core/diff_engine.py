# backend/core/diff_engine.py
"""
差异引擎 - 计算两段文本的字符级编辑脚本，并渲染为行级对比视图
主要函数: compute_diff(), align_to_lines(), render_split(), render_unified(), render(), diff_stats()
辅助函数: _bisect() Myers 中间蛇形二分；_cleanup_semantic() 语义清理

纯函数，无 I/O、无共享状态，可在任意线程调用。
相同输入总是得到相同输出（不设超时，不走启发式捷径）。
"""
import re
from dataclasses import dataclass
from enum import Enum, IntEnum
from typing import List, Optional


class DiffOp(IntEnum):
    DELETE = -1
    EQUAL = 0
    INSERT = 1


class LineKind(str, Enum):
    ADDED = "added"
    REMOVED = "removed"
    UNCHANGED = "unchanged"
    GAPPED = "gapped"


@dataclass(frozen=True)
class DiffSpan:
    """一段连续的编辑操作"""
    op: DiffOp
    text: str


@dataclass(frozen=True)
class RenderedLine:
    """视图中的一行；GAPPED 占位行没有行号"""
    text: str
    kind: LineKind
    line_number: Optional[int] = None

    def to_dict(self) -> dict:
        return {"text": self.text, "type": self.kind.value, "line_number": self.line_number}


@dataclass(frozen=True)
class SplitView:
    """左右两栏，行数相同，逐行对齐"""
    left: List[RenderedLine]
    right: List[RenderedLine]


# ============== 编辑脚本 ==============

def compute_diff(text_a: str, text_b: str) -> List[DiffSpan]:
    """
    计算从 text_a 到 text_b 的编辑脚本。

    输出:
        DiffSpan 列表。
        EQUAL + DELETE 依次拼接还原 text_a，EQUAL + INSERT 依次拼接还原 text_b。
        两段文本都为空时返回 [DiffSpan(EQUAL, "")]。
        compute_diff(b, a) 恰好是 compute_diff(a, b) 删除/插入互换的结果。
    """
    if text_a == text_b:
        return [DiffSpan(DiffOp.EQUAL, text_a)]

    # 总是以字典序较小的一侧作为旧文本计算，反方向取逆
    if text_a > text_b:
        return _invert(compute_diff(text_b, text_a))

    diffs = _diff_main(text_a, text_b)
    _cleanup_semantic(diffs)
    return _normalize(diffs)


_SWAPPED = {DiffOp.DELETE: DiffOp.INSERT, DiffOp.INSERT: DiffOp.DELETE, DiffOp.EQUAL: DiffOp.EQUAL}


def _invert(spans: List[DiffSpan]) -> List[DiffSpan]:
    return _normalize((_SWAPPED[s.op], s.text) for s in spans)


def _normalize(diffs) -> List[DiffSpan]:
    """
    规范形式：丢弃空片段；两个 EQUAL 之间的编辑合并为至多一个 DELETE 加一个 INSERT（删除在前）；
    相邻 EQUAL 合并。
    """
    spans: List[DiffSpan] = []
    deleted: List[str] = []
    inserted: List[str] = []

    def flush_edits():
        if deleted:
            spans.append(DiffSpan(DiffOp.DELETE, "".join(deleted)))
        if inserted:
            spans.append(DiffSpan(DiffOp.INSERT, "".join(inserted)))
        deleted.clear()
        inserted.clear()

    for op, text in diffs:
        if not text:
            continue
        if op == DiffOp.DELETE:
            deleted.append(text)
        elif op == DiffOp.INSERT:
            inserted.append(text)
        else:
            flush_edits()
            if spans and spans[-1].op == DiffOp.EQUAL:
                spans[-1] = DiffSpan(DiffOp.EQUAL, spans[-1].text + text)
            else:
                spans.append(DiffSpan(DiffOp.EQUAL, text))
    flush_edits()
    return spans


def _diff_main(text1: str, text2: str) -> list:
    """返回可变的 [op, text] 列表，供清理步骤原地修改"""
    if text1 == text2:
        return [[DiffOp.EQUAL, text1]] if text1 else []

    # 去掉公共前后缀
    prefix_len = _common_prefix(text1, text2)
    prefix = text1[:prefix_len]
    text1, text2 = text1[prefix_len:], text2[prefix_len:]

    suffix_len = _common_suffix(text1, text2)
    if suffix_len:
        suffix = text1[-suffix_len:]
        text1, text2 = text1[:-suffix_len], text2[:-suffix_len]
    else:
        suffix = ""

    diffs = _diff_compute(text1, text2)

    if prefix:
        diffs.insert(0, [DiffOp.EQUAL, prefix])
    if suffix:
        diffs.append([DiffOp.EQUAL, suffix])
    _cleanup_merge(diffs)
    return diffs


def _diff_compute(text1: str, text2: str) -> list:
    """两段文本没有公共前后缀时的计算"""
    if not text1:
        return [[DiffOp.INSERT, text2]]
    if not text2:
        return [[DiffOp.DELETE, text1]]

    if len(text1) > len(text2):
        long_text, short_text = text1, text2
    else:
        long_text, short_text = text2, text1

    # 短文本完整出现在长文本中
    i = long_text.find(short_text)
    if i != -1:
        op = DiffOp.DELETE if len(text1) > len(text2) else DiffOp.INSERT
        return [
            [op, long_text[:i]],
            [DiffOp.EQUAL, short_text],
            [op, long_text[i + len(short_text):]],
        ]

    # 单个字符且不在另一段中：必然是整体替换
    if len(short_text) == 1:
        return [[DiffOp.DELETE, text1], [DiffOp.INSERT, text2]]

    return _bisect(text1, text2)


def _bisect(text1: str, text2: str) -> list:
    """
    Myers O(ND) 中间蛇形：正向与反向同时推进，在相遇处切分后分别递归。
    找不到公共部分时退化为整体删除 + 整体插入。
    """
    len1, len2 = len(text1), len(text2)
    max_d = (len1 + len2 + 1) // 2
    v_offset = max_d
    v_length = 2 * max_d
    v1 = [-1] * v_length
    v1[v_offset + 1] = 0
    v2 = list(v1)
    delta = len1 - len2
    # 长度差为奇数时，正向路径先与反向路径相遇
    front = delta % 2 != 0

    k1start = k1end = k2start = k2end = 0
    for d in range(max_d):
        # 正向
        for k1 in range(-d + k1start, d + 1 - k1end, 2):
            k1_offset = v_offset + k1
            if k1 == -d or (k1 != d and v1[k1_offset - 1] < v1[k1_offset + 1]):
                x1 = v1[k1_offset + 1]
            else:
                x1 = v1[k1_offset - 1] + 1
            y1 = x1 - k1
            while x1 < len1 and y1 < len2 and text1[x1] == text2[y1]:
                x1 += 1
                y1 += 1
            v1[k1_offset] = x1
            if x1 > len1:
                k1end += 2
            elif y1 > len2:
                k1start += 2
            elif front:
                k2_offset = v_offset + delta - k1
                if 0 <= k2_offset < v_length and v2[k2_offset] != -1:
                    x2 = len1 - v2[k2_offset]
                    if x1 >= x2:
                        return _bisect_split(text1, text2, x1, y1)

        # 反向
        for k2 in range(-d + k2start, d + 1 - k2end, 2):
            k2_offset = v_offset + k2
            if k2 == -d or (k2 != d and v2[k2_offset - 1] < v2[k2_offset + 1]):
                x2 = v2[k2_offset + 1]
            else:
                x2 = v2[k2_offset - 1] + 1
            y2 = x2 - k2
            while (x2 < len1 and y2 < len2
                   and text1[len1 - x2 - 1] == text2[len2 - y2 - 1]):
                x2 += 1
                y2 += 1
            v2[k2_offset] = x2
            if x2 > len1:
                k2end += 2
            elif y2 > len2:
                k2start += 2
            elif not front:
                k1_offset = v_offset + delta - k2
                if 0 <= k1_offset < v_length and v1[k1_offset] != -1:
                    x1 = v1[k1_offset]
                    y1 = v_offset + x1 - k1_offset
                    x2 = len1 - x2
                    if x1 >= x2:
                        return _bisect_split(text1, text2, x1, y1)

    return [[DiffOp.DELETE, text1], [DiffOp.INSERT, text2]]


def _bisect_split(text1: str, text2: str, x: int, y: int) -> list:
    return _diff_main(text1[:x], text2[:y]) + _diff_main(text1[x:], text2[y:])


def _common_prefix(text1: str, text2: str) -> int:
    n = min(len(text1), len(text2))
    i = 0
    while i < n and text1[i] == text2[i]:
        i += 1
    return i


def _common_suffix(text1: str, text2: str) -> int:
    n = min(len(text1), len(text2))
    i = 0
    while i < n and text1[-1 - i] == text2[-1 - i]:
        i += 1
    return i


def _common_overlap(text1: str, text2: str) -> int:
    """text1 的后缀与 text2 的前缀的最长重叠长度"""
    len1, len2 = len(text1), len(text2)
    if not len1 or not len2:
        return 0
    if len1 > len2:
        text1 = text1[-len2:]
    elif len1 < len2:
        text2 = text2[:len1]
    text_length = min(len1, len2)
    if text1 == text2:
        return text_length

    best = 0
    length = 1
    while True:
        pattern = text1[-length:]
        found = text2.find(pattern)
        if found == -1:
            return best
        length += found
        if found == 0 or text1[-length:] == text2[:length]:
            best = length
            length += 1


# ============== 归并 ==============

def _cleanup_merge(diffs: list) -> None:
    """
    合并相邻同类操作，把删除/插入的公共前后缀提出为 EQUAL，
    并把夹在两个 EQUAL 之间、可整体平移的单个编辑吸收到一侧。
    """
    diffs.append([DiffOp.EQUAL, ""])  # 哨兵
    pointer = 0
    count_delete = count_insert = 0
    text_delete = text_insert = ""

    while pointer < len(diffs):
        op = diffs[pointer][0]
        if op == DiffOp.INSERT:
            count_insert += 1
            text_insert += diffs[pointer][1]
            pointer += 1
        elif op == DiffOp.DELETE:
            count_delete += 1
            text_delete += diffs[pointer][1]
            pointer += 1
        else:
            if count_delete + count_insert > 1:
                if count_delete and count_insert:
                    common = _common_prefix(text_insert, text_delete)
                    if common:
                        x = pointer - count_delete - count_insert - 1
                        if x >= 0 and diffs[x][0] == DiffOp.EQUAL:
                            diffs[x][1] += text_insert[:common]
                        else:
                            diffs.insert(0, [DiffOp.EQUAL, text_insert[:common]])
                            pointer += 1
                        text_insert = text_insert[common:]
                        text_delete = text_delete[common:]
                    common = _common_suffix(text_insert, text_delete)
                    if common:
                        diffs[pointer][1] = text_insert[-common:] + diffs[pointer][1]
                        text_insert = text_insert[:-common]
                        text_delete = text_delete[:-common]

                # 删除在前、插入在后
                new_ops = []
                if text_delete:
                    new_ops.append([DiffOp.DELETE, text_delete])
                if text_insert:
                    new_ops.append([DiffOp.INSERT, text_insert])
                pointer -= count_delete + count_insert
                diffs[pointer:pointer + count_delete + count_insert] = new_ops
                pointer += len(new_ops) + 1
            elif pointer and diffs[pointer - 1][0] == DiffOp.EQUAL:
                diffs[pointer - 1][1] += diffs[pointer][1]
                del diffs[pointer]
            else:
                pointer += 1
            count_delete = count_insert = 0
            text_delete = text_insert = ""

    if diffs[-1][1] == "":
        diffs.pop()

    # 第二轮: A<ins>BA</ins>C -> <ins>AB</ins>AC
    changes = False
    pointer = 1
    while pointer < len(diffs) - 1:
        prev, cur, nxt = diffs[pointer - 1], diffs[pointer], diffs[pointer + 1]
        if prev[0] == DiffOp.EQUAL and nxt[0] == DiffOp.EQUAL:
            if cur[1].endswith(prev[1]):
                if prev[1]:
                    cur[1] = prev[1] + cur[1][:-len(prev[1])]
                    nxt[1] = prev[1] + nxt[1]
                del diffs[pointer - 1]
                changes = True
            elif cur[1].startswith(nxt[1]):
                prev[1] += nxt[1]
                cur[1] = cur[1][len(nxt[1]):] + nxt[1]
                del diffs[pointer + 1]
                changes = True
        pointer += 1

    if changes:
        _cleanup_merge(diffs)


# ============== 语义清理 ==============

def _cleanup_semantic(diffs: list) -> None:
    """
    去掉信息量低的碎片：
    1. 两侧编辑都不短于它的 EQUAL 折叠进编辑（"删 abc / 等 x / 删 def" 不再显示孤立的 x）
    2. 单个编辑平移到词/行边界（_cleanup_semantic_lossless）
    3. 删除与插入有大段重叠时，把重叠部分提出为 EQUAL
    """
    changes = False
    equalities = []  # EQUAL 所在下标的栈
    last_equality = None
    pointer = 0
    # 当前 EQUAL 之前 / 之后的编辑字符数
    length_insertions1 = length_deletions1 = 0
    length_insertions2 = length_deletions2 = 0

    while pointer < len(diffs):
        if diffs[pointer][0] == DiffOp.EQUAL:
            equalities.append(pointer)
            length_insertions1, length_insertions2 = length_insertions2, 0
            length_deletions1, length_deletions2 = length_deletions2, 0
            last_equality = diffs[pointer][1]
        else:
            if diffs[pointer][0] == DiffOp.INSERT:
                length_insertions2 += len(diffs[pointer][1])
            else:
                length_deletions2 += len(diffs[pointer][1])

            if (last_equality
                    and len(last_equality) <= max(length_insertions1, length_deletions1)
                    and len(last_equality) <= max(length_insertions2, length_deletions2)):
                # 把这段 EQUAL 拆成 删除 + 插入
                diffs.insert(equalities[-1], [DiffOp.DELETE, last_equality])
                diffs[equalities[-1] + 1][0] = DiffOp.INSERT
                equalities.pop()
                if equalities:
                    equalities.pop()
                pointer = equalities[-1] if equalities else -1
                length_insertions1 = length_deletions1 = 0
                length_insertions2 = length_deletions2 = 0
                last_equality = None
                changes = True
        pointer += 1

    if changes:
        _cleanup_merge(diffs)
    _cleanup_semantic_lossless(diffs)

    # 删除/插入重叠提取
    pointer = 1
    while pointer < len(diffs):
        if diffs[pointer - 1][0] == DiffOp.DELETE and diffs[pointer][0] == DiffOp.INSERT:
            deletion = diffs[pointer - 1][1]
            insertion = diffs[pointer][1]
            overlap1 = _common_overlap(deletion, insertion)
            overlap2 = _common_overlap(insertion, deletion)
            if overlap1 >= overlap2:
                if overlap1 >= len(deletion) / 2 or overlap1 >= len(insertion) / 2:
                    diffs.insert(pointer, [DiffOp.EQUAL, insertion[:overlap1]])
                    diffs[pointer - 1] = [DiffOp.DELETE, deletion[:len(deletion) - overlap1]]
                    diffs[pointer + 1] = [DiffOp.INSERT, insertion[overlap1:]]
                    pointer += 1
            else:
                if overlap2 >= len(deletion) / 2 or overlap2 >= len(insertion) / 2:
                    diffs.insert(pointer, [DiffOp.EQUAL, deletion[:overlap2]])
                    diffs[pointer - 1] = [DiffOp.INSERT, insertion[:len(insertion) - overlap2]]
                    diffs[pointer + 1] = [DiffOp.DELETE, deletion[overlap2:]]
                    pointer += 1
            pointer += 1
        pointer += 1


_NON_ALNUM = re.compile(r"[^a-zA-Z0-9]")
_WHITESPACE = re.compile(r"\s")
_LINEBREAK = re.compile(r"[\r\n]")
_BLANKLINE_END = re.compile(r"\n\r?\n$")
_BLANKLINE_START = re.compile(r"^\r?\n\r?\n")


def _semantic_score(one: str, two: str) -> int:
    """
    边界得分（0-6）：
    6 文本边缘 / 5 空行 / 4 换行 / 3 句末 / 2 空白 / 1 标点 / 0 词中间
    """
    if not one or not two:
        return 6

    char1, char2 = one[-1], two[0]
    non_alnum1 = _NON_ALNUM.match(char1)
    non_alnum2 = _NON_ALNUM.match(char2)
    whitespace1 = non_alnum1 and _WHITESPACE.match(char1)
    whitespace2 = non_alnum2 and _WHITESPACE.match(char2)
    linebreak1 = whitespace1 and _LINEBREAK.match(char1)
    linebreak2 = whitespace2 and _LINEBREAK.match(char2)
    blankline1 = linebreak1 and _BLANKLINE_END.search(one)
    blankline2 = linebreak2 and _BLANKLINE_START.match(two)

    if blankline1 or blankline2:
        return 5
    if linebreak1 or linebreak2:
        return 4
    if non_alnum1 and not whitespace1 and whitespace2:
        return 3
    if whitespace1 or whitespace2:
        return 2
    if non_alnum1 or non_alnum2:
        return 1
    return 0


def _cleanup_semantic_lossless(diffs: list) -> None:
    """夹在两个 EQUAL 之间的单个编辑左右滑动，停在得分最高的边界上"""
    pointer = 1
    while pointer < len(diffs) - 1:
        if diffs[pointer - 1][0] == DiffOp.EQUAL and diffs[pointer + 1][0] == DiffOp.EQUAL:
            equality1 = diffs[pointer - 1][1]
            edit = diffs[pointer][1]
            equality2 = diffs[pointer + 1][1]

            # 先尽量左移
            common = _common_suffix(equality1, edit)
            if common:
                common_string = edit[-common:]
                equality1 = equality1[:-common]
                edit = common_string + edit[:-common]
                equality2 = common_string + equality2

            # 再逐字符右移，记录最高分（同分取更靠右的位置）
            best_equality1, best_edit, best_equality2 = equality1, edit, equality2
            best_score = _semantic_score(equality1, edit) + _semantic_score(edit, equality2)
            while edit and equality2 and edit[0] == equality2[0]:
                equality1 += edit[0]
                edit = edit[1:] + equality2[0]
                equality2 = equality2[1:]
                score = _semantic_score(equality1, edit) + _semantic_score(edit, equality2)
                if score >= best_score:
                    best_score = score
                    best_equality1, best_edit, best_equality2 = equality1, edit, equality2

            if diffs[pointer - 1][1] != best_equality1:
                if best_equality1:
                    diffs[pointer - 1][1] = best_equality1
                else:
                    del diffs[pointer - 1]
                    pointer -= 1
                diffs[pointer][1] = best_edit
                if best_equality2:
                    diffs[pointer + 1][1] = best_equality2
                else:
                    del diffs[pointer + 1]
                    pointer -= 1
        pointer += 1


# ============== 行对齐 ==============

_LINE_PIECES = re.compile(r"[^\n]*\n|[^\n]+")


def align_to_lines(spans: List[DiffSpan]) -> List[DiffSpan]:
    """
    把字符级编辑脚本整理为整行粒度。

    任何含有编辑的行整体进入一个 DELETE（旧行）/ INSERT（新行）块，
    未被触及的行合并为 EQUAL。输出仍能还原两段原文。
    """
    result: List[DiffSpan] = []
    old_buf = new_buf = ""
    pending_old: List[str] = []
    pending_new: List[str] = []
    dirty = False  # 当前未完成的行是否含有编辑

    def emit(op, text):
        if not text:
            return
        if result and result[-1].op == op:
            result[-1] = DiffSpan(op, result[-1].text + text)
        else:
            result.append(DiffSpan(op, text))

    def flush_hunk():
        emit(DiffOp.DELETE, "".join(pending_old))
        emit(DiffOp.INSERT, "".join(pending_new))
        pending_old.clear()
        pending_new.clear()

    for span in spans:
        for piece in _LINE_PIECES.findall(span.text):
            line_done = piece.endswith("\n")
            if span.op == DiffOp.EQUAL:
                old_buf += piece
                new_buf += piece
                if not line_done:
                    continue
                if dirty:
                    pending_old.append(old_buf)
                    pending_new.append(new_buf)
                else:
                    flush_hunk()
                    emit(DiffOp.EQUAL, old_buf)
                old_buf = new_buf = ""
                dirty = False
            elif span.op == DiffOp.DELETE:
                old_buf += piece
                dirty = True
                if line_done:
                    pending_old.append(old_buf)
                    old_buf = ""
            else:
                new_buf += piece
                dirty = True
                if line_done:
                    pending_new.append(new_buf)
                    new_buf = ""

            # 两侧都没有未完成的行时，下一行重新开始判断
            if not old_buf and not new_buf:
                dirty = False

    # 收尾：最后一行没有换行符
    if old_buf or new_buf:
        if dirty:
            if old_buf:
                pending_old.append(old_buf)
            if new_buf:
                pending_new.append(new_buf)
        else:
            flush_hunk()
            emit(DiffOp.EQUAL, old_buf)
    flush_hunk()

    if not result and spans:
        return [DiffSpan(DiffOp.EQUAL, "")]
    return result


def _span_lines(text: str) -> List[str]:
    """按换行切分；以换行结尾时不产生多余的空末行"""
    lines = text.split("\n")
    if lines[-1] == "":
        lines.pop()
    return lines


# ============== 渲染 ==============

def render_split(spans: List[DiffSpan]) -> SplitView:
    """
    两栏视图：删除行只出现在左栏，右栏放占位；插入行反之；
    未变行两栏同时出现，左右行号同步递增。
    """
    left: List[RenderedLine] = []
    right: List[RenderedLine] = []
    left_no = right_no = 1

    for span in align_to_lines(spans):
        for line in _span_lines(span.text):
            if span.op == DiffOp.DELETE:
                left.append(RenderedLine(line, LineKind.REMOVED, left_no))
                right.append(RenderedLine("", LineKind.GAPPED))
                left_no += 1
            elif span.op == DiffOp.INSERT:
                left.append(RenderedLine("", LineKind.GAPPED))
                right.append(RenderedLine(line, LineKind.ADDED, right_no))
                right_no += 1
            else:
                left.append(RenderedLine(line, LineKind.UNCHANGED, left_no))
                right.append(RenderedLine(line, LineKind.UNCHANGED, right_no))
                left_no += 1
                right_no += 1

    return SplitView(left=left, right=right)


_UNIFIED_KINDS = {
    DiffOp.DELETE: LineKind.REMOVED,
    DiffOp.INSERT: LineKind.ADDED,
    DiffOp.EQUAL: LineKind.UNCHANGED,
}


def render_unified(spans: List[DiffSpan]) -> List[RenderedLine]:
    """单栏视图：一个行号计数器，每输出一行加一，不做占位"""
    lines: List[RenderedLine] = []
    line_no = 1
    for span in align_to_lines(spans):
        kind = _UNIFIED_KINDS[span.op]
        for line in _span_lines(span.text):
            lines.append(RenderedLine(line, kind, line_no))
            line_no += 1
    return lines


def render(spans: List[DiffSpan], mode: str = "split"):
    """按 mode 选择视图: "split" -> SplitView, "unified" -> List[RenderedLine]"""
    if mode == "split":
        return render_split(spans)
    if mode == "unified":
        return render_unified(spans)
    raise ValueError(f"Unknown view mode: {mode!r}")


def diff_stats(spans: List[DiffSpan]) -> dict:
    """行级统计"""
    counts = {kind: 0 for kind in (LineKind.ADDED, LineKind.REMOVED, LineKind.UNCHANGED)}
    for line in render_unified(spans):
        counts[line.kind] += 1
    return {
        "added_lines": counts[LineKind.ADDED],
        "removed_lines": counts[LineKind.REMOVED],
        "unchanged_lines": counts[LineKind.UNCHANGED],
        "total_changes": counts[LineKind.ADDED] + counts[LineKind.REMOVED],
    }
