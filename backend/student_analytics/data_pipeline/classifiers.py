"""
Content classifiers for student and assistant messages.

TaskClassifier assigns a TaskCategory from weighted keyword rules.
ContentAnalyzer extracts cheap surface features: length, whether the text
contains code, the likely programming language, fenced code blocks.

Both are plain rule tables evaluated with ``re`` and substring search; no
model is loaded. Construct instances explicitly and pass them where needed.
"""

from __future__ import annotations

import os
import re
from dataclasses import dataclass, field
from typing import Optional

from student_analytics.models.events import LanguageHint, TaskCategory


# ---------------------------------------------------------------------------
# Task classification
# ---------------------------------------------------------------------------

@dataclass
class ClassificationRule:
    category: str
    keywords: list[str]
    weight: int  # priority when several rules match


DEFAULT_RULES: list[ClassificationRule] = [
    ClassificationRule(
        TaskCategory.ALGORITHM.value,
        [
            "排序", "sort", "merge sort", "quick sort", "算法", "complexity",
            "时间复杂度", "空间复杂度", "递归", "recursion", "动态规划", "dp",
            "二分", "binary search", "图论", "graph", "树", "tree", "链表",
            "linked list", "栈", "stack", "队列", "queue", "哈希", "hash",
            "bfs", "dfs",
        ],
        10,
    ),
    ClassificationRule(
        TaskCategory.DEBUGGING.value,
        [
            "报错", "error", "exception", "stack trace", "bug", "crash", "失败",
            "fail", "不工作", "not working", "修复", "fix", "调试", "debug",
            "segfault", "segmentation fault", "编译错误", "compile error",
            "运行错误", "runtime error", "为什么不行", "为什么报错",
        ],
        9,
    ),
    ClassificationRule(
        TaskCategory.EXPLANATION.value,
        [
            "解释", "explain", "原理", "why", "how does", "原理是什么", "什么是",
            "what is", "为什么", "怎么理解", "含义", "meaning", "概念", "concept",
            "区别", "difference", "比较", "compare",
        ],
        8,
    ),
    ClassificationRule(
        TaskCategory.CODE_GENERATION.value,
        [
            "写一个", "write", "实现", "implement", "生成", "generate", "创建",
            "create", "编写", "code", "帮我写", "帮我实现", "给我一个", "give me",
            "写个", "写段",
        ],
        7,
    ),
    ClassificationRule(
        TaskCategory.REFACTORING.value,
        [
            "重构", "refactor", "优化", "optimize", "改进", "improve", "简化",
            "simplify", "清理", "clean", "整理", "性能", "performance",
        ],
        6,
    ),
    ClassificationRule(
        TaskCategory.TESTING.value,
        [
            "测试", "test", "单元测试", "unit test", "用例", "test case", "断言",
            "assert", "mock", "覆盖率", "coverage",
        ],
        5,
    ),
    ClassificationRule(
        TaskCategory.LANGUAGE_REQUEST.value,
        [
            "python", "java", "c++", "cpp", "javascript", "js", "ts",
            "typescript", "用 python", "用java", "用c++", "c语言", "c#", "csharp",
            "go", "golang", "rust", "ruby", "php", "swift", "kotlin",
        ],
        4,
    ),
]


class TaskClassifier:
    """Keyword classifier: score = matched keywords × rule weight.

    Keywords match as case-insensitive substrings. The highest score wins;
    equal scores keep rule order. No match, or empty text, gives ``other``.
    """

    def __init__(self, rules: Optional[list[ClassificationRule]] = None):
        source = DEFAULT_RULES if rules is None else rules
        self.rules = [ClassificationRule(r.category, list(r.keywords), r.weight) for r in source]

    def classify(self, text: Optional[str]) -> str:
        return self.classify_with_scores(text)[0][0]

    def classify_with_scores(self, text: Optional[str]) -> list[tuple[str, int]]:
        """All matching categories with their scores, best first."""
        if not text or not text.strip():
            return [(TaskCategory.OTHER.value, 0)]

        lower = text.lower()
        results = []
        for rule in self.rules:
            matches = sum(1 for kw in rule.keywords if kw.lower() in lower)
            if matches > 0:
                results.append((rule.category, matches * rule.weight))

        if not results:
            return [(TaskCategory.OTHER.value, 0)]
        # sorted() is stable: ties stay in rule order
        return sorted(results, key=lambda r: r[1], reverse=True)

    def add_rule(self, rule: ClassificationRule) -> None:
        self.rules.append(rule)

    def supported_categories(self) -> list[str]:
        categories = list(dict.fromkeys(r.category for r in self.rules))
        if TaskCategory.OTHER.value not in categories:
            categories.append(TaskCategory.OTHER.value)
        return categories


# ---------------------------------------------------------------------------
# Content analysis
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class ContentAnalysis:
    content_length: int = 0
    has_code: bool = False
    language_hint: str = LanguageHint.UNKNOWN.value
    code_block_count: int = 0


@dataclass
class LanguagePattern:
    language: str
    patterns: list[re.Pattern]
    keywords: list[str] = field(default_factory=list)


_FENCED_RE = re.compile(r"```[\s\S]*?```")
_FENCED_BODY_RE = re.compile(r"```(?:\w+)?\n?([\s\S]*?)```")
_INLINE_RE = re.compile(r"`[^`]+`")

# Any of these alone means the text holds code
CODE_BLOCK_PATTERNS = [
    _FENCED_RE,
    re.compile(r"`[^`\n]+`"),
    re.compile(r"^[ \t]{4,}\S+", re.M),  # indented block
]

# Two or more of these together mean the text holds code
CODE_INDICATORS = [
    re.compile(r"\b(function|def|class|import|from|const|let|var|return|if|else|for|while|try|catch)\b"),
    re.compile(r"[{}\[\]();]"),
    re.compile(r"\w+\s*\([^)]*\)\s*[{:]"),
    re.compile(r"^\s*(public|private|protected|static)\s+", re.M),
    re.compile(r"[a-zA-Z_]\w*\s*=\s*.+;?\s*$", re.M),
    re.compile(r"#include\s*<.*>"),
    re.compile(r"import\s+[\w.]+"),
    re.compile(r"using\s+namespace"),
]

LANGUAGE_PATTERNS: list[LanguagePattern] = [
    LanguagePattern(
        LanguageHint.PYTHON.value,
        [re.compile(p, f) for p, f in [
            (r"\bdef\s+\w+\s*\([^)]*\)\s*:", 0),
            (r"\bclass\s+\w+.*:", 0),
            (r"\bimport\s+\w+", 0),
            (r"\bfrom\s+\w+\s+import", 0),
            (r"\bprint\s*\(", 0),
            (r"\bself\.", 0),
            (r"\bif\s+.*:\s*$", re.M),
            (r"\bfor\s+\w+\s+in\s+", 0),
            (r"\belif\s+", 0),
            (r"\b(True|False|None)\b", 0),
        ]],
        ["python", "py", "pip", "django", "flask", "numpy", "pandas", "pytorch", "tensorflow"],
    ),
    LanguagePattern(
        LanguageHint.JAVA.value,
        [re.compile(p) for p in [
            r"\bpublic\s+(static\s+)?class\s+\w+",
            r"\bpublic\s+static\s+void\s+main",
            r"\bSystem\.out\.print",
            r"\bimport\s+java\.",
            r"\bnew\s+\w+\s*\(",
            r"\b(String|int|boolean|double|float)\s+\w+",
            r"@Override",
            r"\bextends\s+\w+",
            r"\bimplements\s+\w+",
        ]],
        ["java", "jdk", "jvm", "maven", "gradle", "spring", "springboot"],
    ),
    LanguagePattern(
        LanguageHint.CPP.value,
        [re.compile(p) for p in [
            r"#include\s*<.*>",
            r"\busing\s+namespace\s+std",
            r"\bstd::",
            r"\bcout\s*<<",
            r"\bcin\s*>>",
            r"\bint\s+main\s*\(",
            r"\bvector\s*<",
            r"\btemplate\s*<",
            r"\bclass\s+\w+\s*\{",
            r"::\w+",
        ]],
        ["c++", "cpp", "g++", "gcc", "stl", "iostream"],
    ),
    LanguagePattern(
        LanguageHint.C.value,
        [re.compile(p) for p in [
            r"#include\s*<stdio\.h>",
            r"#include\s*<stdlib\.h>",
            r"\bprintf\s*\(",
            r"\bscanf\s*\(",
            r"\bmalloc\s*\(",
            r"\bfree\s*\(",
            r"\bint\s+main\s*\(\s*(void|int)",
            r"\bstruct\s+\w+\s*\{",
        ]],
        ["c语言", "clang", "gcc"],
    ),
    LanguagePattern(
        LanguageHint.JAVASCRIPT.value,
        [re.compile(p) for p in [
            r"\bfunction\s+\w+\s*\(",
            r"\bconst\s+\w+\s*=",
            r"\blet\s+\w+\s*=",
            r"\bvar\s+\w+\s*=",
            r"=>\s*\{",
            r"\bconsole\.log\s*\(",
            r"\bdocument\.",
            r"\bwindow\.",
            r"\basync\s+function",
            r"\bawait\s+",
            r"\bexport\s+(default\s+)?",
            r"\brequire\s*\(",
        ]],
        ["javascript", "js", "node", "nodejs", "npm", "react", "vue", "angular"],
    ),
    LanguagePattern(
        LanguageHint.TYPESCRIPT.value,
        [re.compile(p) for p in [
            r":\s*(string|number|boolean|any|void)\b",
            r"\binterface\s+\w+\s*\{",
            r"\btype\s+\w+\s*=",
            r"<\w+>",
            r"\bas\s+\w+",
            r"\bimport\s+.*\s+from\s+['\"][^'\"]+['\"]",
            r"\bexport\s+interface",
            r"\bexport\s+type",
        ]],
        ["typescript", "ts", "tsx", "tsc"],
    ),
]

EXTENSION_LANGUAGES: dict[str, str] = {
    ".py": LanguageHint.PYTHON.value,
    ".java": LanguageHint.JAVA.value,
    ".cpp": LanguageHint.CPP.value,
    ".cc": LanguageHint.CPP.value,
    ".cxx": LanguageHint.CPP.value,
    ".hpp": LanguageHint.CPP.value,
    ".h": LanguageHint.C.value,
    ".c": LanguageHint.C.value,
    ".js": LanguageHint.JAVASCRIPT.value,
    ".jsx": LanguageHint.JAVASCRIPT.value,
    ".mjs": LanguageHint.JAVASCRIPT.value,
    ".ts": LanguageHint.TYPESCRIPT.value,
    ".tsx": LanguageHint.TYPESCRIPT.value,
}

PURE_CODE_THRESHOLD = 0.7


class ContentAnalyzer:
    """Surface-feature extraction for a single message."""

    def __init__(self, language_patterns: Optional[list[LanguagePattern]] = None):
        self.language_patterns = LANGUAGE_PATTERNS if language_patterns is None else language_patterns

    def analyze(self, text: Optional[str]) -> ContentAnalysis:
        if not text:
            return ContentAnalysis()
        return ContentAnalysis(
            content_length=len(text),
            has_code=self.detect_code(text),
            language_hint=self.infer_language(text),
            code_block_count=self.count_code_blocks(text),
        )

    @staticmethod
    def count_code_blocks(text: str) -> int:
        """Number of fenced (```) blocks."""
        return len(_FENCED_RE.findall(text or ""))

    @staticmethod
    def detect_code(text: str) -> bool:
        if not text:
            return False
        if any(p.search(text) for p in CODE_BLOCK_PATTERNS):
            return True
        return sum(1 for p in CODE_INDICATORS if p.search(text)) >= 2

    def infer_language(self, text: str) -> str:
        """Best-scoring language: +2 per keyword, +3 per code pattern.

        The first language to reach the top score wins.
        """
        if not text:
            return LanguageHint.UNKNOWN.value

        lower = text.lower()
        best, best_score = LanguageHint.UNKNOWN.value, 0
        for lp in self.language_patterns:
            score = 2 * sum(1 for kw in lp.keywords if kw in lower)
            score += 3 * sum(1 for p in lp.patterns if p.search(text))
            if score > best_score:
                best, best_score = lp.language, score
        return best

    @staticmethod
    def is_pure_code_submission(text: str) -> bool:
        """True when more than 70% of the text sits inside code spans."""
        if not text:
            return False
        remainder = _INLINE_RE.sub("", _FENCED_RE.sub("", text)).strip()
        return 1 - len(remainder) / len(text) > PURE_CODE_THRESHOLD

    @staticmethod
    def extract_code_blocks(text: str) -> list[str]:
        """Bodies of fenced blocks, info string and surrounding blank space removed."""
        return [m.strip() for m in _FENCED_BODY_RE.findall(text or "") if m]

    @staticmethod
    def language_from_extension(path_or_ext: str) -> str:
        ext = path_or_ext.lower()
        if not ext.startswith(".") or "/" in ext or "\\" in ext:
            ext = os.path.splitext(ext)[1]
        return EXTENSION_LANGUAGES.get(ext, LanguageHint.UNKNOWN.value)
