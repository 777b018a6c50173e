"""Tests for the general code quality analyzer."""

from textwrap import dedent

from meiwei_core.analyzers.quality import QualityAnalyzer
from meiwei_store.models import Severity


def _analyze(source: str):
    content = dedent(source).strip("\n")
    return QualityAnalyzer().analyze(content, content.splitlines())


def _rules(results):
    return [r.rule_id for r in results]


class TestStringConcatenation:
    def test_literal_concatenation_flagged(self):
        (hit,) = _analyze('var message = "a" + "b";')
        assert hit.rule_id == "PERF_STRING_CONCAT"
        assert hit.severity == Severity.WARNING
        assert hit.line == 1
        assert hit.column == 19
        assert hit.snippet == 'var message = "a" + "b";'

    def test_commented_line_ignored(self):
        assert _analyze('// var message = "a" + "b";') == []

    def test_numeric_addition_ignored(self):
        assert "PERF_STRING_CONCAT" not in _rules(_analyze("var total = a + b;"))


class TestDeclarations:
    def test_public_field(self):
        results = _analyze("public int health;")
        assert _rules(results) == ["ENCAPSULATION_PUBLIC_FIELD"]
        assert results[0].severity == Severity.INFO

    def test_public_members_that_are_not_fields_are_ignored(self):
        source = """
        public class Player
        public void Jump()
        public int Health { get; set; }
        public event Action Died;
        """
        assert "ENCAPSULATION_PUBLIC_FIELD" not in _rules(_analyze(source))

    def test_magic_number(self):
        results = _analyze("speed = speed * 42;")
        assert _rules(results) == ["MAINTAINABILITY_MAGIC_NUMBER"]
        assert results[0].column == 17

    def test_single_digit_and_constants_are_not_magic(self):
        assert _analyze("speed = speed * 2;") == []
        assert "MAINTAINABILITY_MAGIC_NUMBER" not in _rules(_analyze("private const int maxHealth = 100;"))
        assert "MAINTAINABILITY_MAGIC_NUMBER" not in _rules(_analyze("static readonly int maxHealth = 100;"))

    def test_pascal_case_local(self):
        results = _analyze("int Count = 0;")
        assert _rules(results) == ["NAMING_LOCAL_PASCALCASE"]
        assert results[0].column == 5

    def test_keywords_before_pascal_case_are_not_declarations(self):
        assert _analyze("return Result;") == []
        assert _analyze("throw Error;") == []


class TestBulkCollectionCalls:
    def test_linq_inside_update(self):
        source = """
        void Update()
        {
            var alive = enemies.Where(e => e.alive).ToList();
        }
        """
        results = [r for r in _analyze(source) if r.rule_id == "PERF_LINQ_IN_HOT_PATH"]
        assert [r.line for r in results] == [3, 3]
        assert "Where" in results[0].message
        assert "ToList" in results[1].message
        assert results[0].severity == Severity.WARNING

    def test_linq_inside_loop(self):
        source = """
        foreach (var group in groups)
        {
            total += group.Items.Count(i => i.active) + group.Items.First().value;
        }
        """
        assert "PERF_LINQ_IN_HOT_PATH" in _rules(_analyze(source))

    def test_linq_far_from_markers_is_ignored(self):
        lines = ["void Update()", "{", "}"] + ["// padding"] * 11 + ["var first = items.First();"]
        content = "\n".join(lines)
        results = QualityAnalyzer().analyze(content, lines)
        assert "PERF_LINQ_IN_HOT_PATH" not in _rules(results)

    def test_linq_outside_hot_path(self):
        assert _analyze("var first = items.First();") == []


class TestExceptionHandling:
    def test_empty_broad_catch_on_one_line(self):
        source = """
        try { Load(); }
        catch (Exception e) { }
        """
        results = _analyze(source)
        assert _rules(results) == ["EXCEPTION_EMPTY_CATCH", "EXCEPTION_BROAD_CATCH"]
        assert all(r.line == 2 for r in results)

    def test_empty_catch_over_following_lines(self):
        source = """
        catch (IOException)
        {
        }
        """
        assert _rules(_analyze(source)) == ["EXCEPTION_EMPTY_CATCH"]

    def test_catch_with_body_is_not_empty(self):
        source = """
        catch (System.Exception e)
        {
            Log(e);
        }
        """
        assert _rules(_analyze(source)) == ["EXCEPTION_BROAD_CATCH"]


class TestEventSubscriptions:
    def test_subscription_without_unsubscription(self):
        results = _analyze("GameEvents.OnDeath += HandleDeath;")
        assert _rules(results) == ["MEMORY_EVENT_SUBSCRIBE_NO_UNSUBSCRIBE"]
        assert results[0].column == 20

    def test_any_unsubscription_in_file_suppresses_rule(self):
        source = """
        GameEvents.OnDeath += HandleDeath;
        GameEvents.OnDeath -= HandleDeath;
        """
        assert _analyze(source) == []


def test_results_follow_detector_order():
    source = """
    public string title;
    void Update()
    {
        label = "HP: " + hp.ToString();
        var top = scores.OrderBy(s => s).First();
    }
    """
    assert _rules(_analyze(source)) == [
        "PERF_STRING_CONCAT",
        "ENCAPSULATION_PUBLIC_FIELD",
        "PERF_LINQ_IN_HOT_PATH",
        "PERF_LINQ_IN_HOT_PATH",
    ]


def test_same_input_gives_identical_results():
    source = 'public int hp;\nvoid Update() { var s = "a" + name; var xs = list.ToArray(); }\n'
    first = QualityAnalyzer().analyze(source, source.splitlines())
    second = QualityAnalyzer().analyze(source, source.splitlines())
    assert first == second
