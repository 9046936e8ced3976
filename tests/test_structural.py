"""Tests for the structural rewriters, run through the statement router."""

from app.services.sql_conversion import Severity, WarningKind
from app.services.sql_conversion.converters.structural.hierarchical import CTE_NAME, GUIDE_MARKER


def _kinds(context) -> set:
    return {w.kind for w in context.warnings}


class TestCaseWhen:
    """Test DECODE, NVL2 and IF rewrites."""

    def test_decode_to_case(self, convert) -> None:
        """DECODE becomes a simple CASE."""
        sql, context = convert('oracle', 'postgresql',
                               "SELECT DECODE(status, 'A', 'Active', 'I', 'Inactive', 'Unknown') FROM accounts")
        assert sql == ("SELECT CASE status WHEN 'A' THEN 'Active' WHEN 'I' THEN 'Inactive' "
                       "ELSE 'Unknown' END FROM accounts")
        assert 'DECODE -> CASE' in context.applied_rules

    def test_decode_null_search(self, convert) -> None:
        """A NULL search value forces the searched CASE form."""
        sql, _ = convert('oracle', 'mysql', "SELECT DECODE(x, NULL, 'none', 1, 'one') FROM t")
        assert sql == "SELECT CASE WHEN x IS NULL THEN 'none' WHEN x = 1 THEN 'one' END FROM t"

    def test_decode_too_few_arguments(self, convert) -> None:
        """A malformed DECODE is kept with a warning."""
        sql, context = convert('oracle', 'mysql', "SELECT DECODE(x, 1) FROM t")
        assert 'DECODE(x, 1)' in sql
        assert WarningKind.MANUAL_REVIEW_NEEDED in _kinds(context)

    def test_nvl2_to_case(self, convert) -> None:
        """NVL2 becomes an IS NOT NULL test."""
        sql, _ = convert('oracle', 'mysql', "SELECT NVL2(bonus, 'yes', 'no') FROM emp")
        assert sql == "SELECT CASE WHEN bonus IS NOT NULL THEN 'yes' ELSE 'no' END FROM emp"

    def test_if_to_case(self, convert) -> None:
        """MySQL IF becomes CASE toward PostgreSQL."""
        sql, _ = convert('mysql', 'postgresql', "SELECT IF(active = 1, 'on', 'off') FROM users")
        assert sql == "SELECT CASE WHEN active = 1 THEN 'on' ELSE 'off' END FROM users"


class TestPseudoColumns:
    """Test ROWNUM rewrites."""

    def test_rownum_cap(self, convert) -> None:
        """ROWNUM <= n becomes LIMIT n."""
        sql, _ = convert('oracle', 'mysql', "SELECT * FROM users WHERE ROWNUM <= 10")
        assert sql == "SELECT * FROM users LIMIT 10"

    def test_rownum_strict_cap_with_other_predicate(self, convert) -> None:
        """ROWNUM < n keeps the remaining WHERE and limits n - 1 rows."""
        sql, _ = convert('oracle', 'postgresql', "SELECT * FROM t WHERE a = 1 AND ROWNUM < 6")
        assert sql == "SELECT * FROM t WHERE a = 1 LIMIT 5"

    def test_rownum_in_subquery(self, convert) -> None:
        """The cap stays on the subquery it belongs to."""
        sql, _ = convert('oracle', 'postgresql', "SELECT * FROM (SELECT id FROM t WHERE ROWNUM = 1) x")
        assert sql == "SELECT * FROM (SELECT id FROM t LIMIT 1) x"

    def test_rownum_in_union_branch_kept(self, convert) -> None:
        """A cap on one UNION branch is not turned into a LIMIT on the whole set."""
        sql, context = convert('oracle', 'mysql', "SELECT a FROM t WHERE ROWNUM <= 5 UNION ALL SELECT b FROM u")
        assert 'LIMIT' not in sql
        assert 'ROWNUM <= 5' in sql
        assert any('set operation' in w.message for w in context.warnings)

    def test_rownum_next_to_or_kept(self, convert) -> None:
        """AND binds tighter than OR, so the cap only covers one side."""
        sql, context = convert('oracle', 'mysql', "SELECT * FROM t WHERE ROWNUM <= 3 AND x = 1 OR y = 2")
        assert sql == "SELECT * FROM t WHERE ROWNUM <= 3 AND x = 1 OR y = 2"
        assert any('top-level OR' in w.message for w in context.warnings)

    def test_or_inside_brackets_still_converted(self, convert) -> None:
        """An OR nested in brackets leaves the cap a plain conjunct."""
        sql, _ = convert('oracle', 'postgresql', "SELECT * FROM t WHERE (x = 1 OR y = 2) AND ROWNUM <= 3")
        assert sql == "SELECT * FROM t WHERE (x = 1 OR y = 2) LIMIT 3"

    def test_limit_before_for_update(self, convert) -> None:
        """LIMIT goes in front of the row-locking clause."""
        sql, _ = convert('oracle', 'postgresql', "SELECT a FROM t WHERE ROWNUM <= 5 FOR UPDATE")
        assert sql == "SELECT a FROM t LIMIT 5 FOR UPDATE"

    def test_rownum_in_in_subquery(self, convert) -> None:
        """MySQL rejects LIMIT inside IN (...); PostgreSQL accepts it."""
        original = "SELECT * FROM t WHERE id IN (SELECT id FROM u WHERE ROWNUM <= 3)"
        mysql, context = convert('oracle', 'mysql', original)
        pg, _ = convert('oracle', 'postgresql', original)
        assert mysql == original
        assert WarningKind.MANUAL_REVIEW_NEEDED in _kinds(context)
        assert pg == "SELECT * FROM t WHERE id IN (SELECT id FROM u LIMIT 3)"


class TestPagination:
    """Test row limiting clauses."""

    def test_offset_fetch_to_limit(self, convert) -> None:
        """OFFSET ... FETCH becomes LIMIT ... OFFSET."""
        sql, _ = convert('oracle', 'mysql', "SELECT * FROM t ORDER BY id OFFSET 5 ROWS FETCH NEXT 10 ROWS ONLY")
        assert sql == "SELECT * FROM t ORDER BY id LIMIT 10 OFFSET 5"

    def test_limit_offset_to_fetch(self, convert) -> None:
        """LIMIT ... OFFSET becomes OFFSET ... FETCH with a version note."""
        sql, context = convert('mysql', 'oracle', "SELECT * FROM t ORDER BY id LIMIT 10 OFFSET 5")
        assert sql == "SELECT * FROM t ORDER BY id OFFSET 5 ROWS FETCH NEXT 10 ROWS ONLY"
        assert any(w.severity is Severity.INFO and '12c' in w.message for w in context.warnings)

    def test_limit_to_fetch_first(self, convert) -> None:
        """A bare LIMIT becomes FETCH FIRST."""
        sql, _ = convert('postgresql', 'oracle', "SELECT * FROM t LIMIT 3")
        assert sql == "SELECT * FROM t FETCH FIRST 3 ROWS ONLY"

    def test_mysql_limit_comma(self, convert) -> None:
        """MySQL LIMIT m, n becomes LIMIT n OFFSET m for PostgreSQL."""
        sql, _ = convert('mysql', 'postgresql', "SELECT * FROM t LIMIT 20, 10")
        assert sql == "SELECT * FROM t LIMIT 10 OFFSET 20"


class TestLegacyJoin:
    """Test (+) outer join rewrites."""

    def test_left_join(self, convert) -> None:
        """A marked right-hand column makes a LEFT JOIN and leaves WHERE empty."""
        sql, _ = convert('oracle', 'postgresql', "SELECT a.name, b.val FROM a, b WHERE a.id = b.id(+)")
        assert sql == "SELECT a.name, b.val FROM a LEFT JOIN b ON a.id = b.id"

    def test_other_predicates_stay(self, convert) -> None:
        """Unmarked predicates remain in WHERE."""
        sql, _ = convert('oracle', 'mysql', "SELECT * FROM a, b WHERE a.id = b.id(+) AND a.x = 1")
        assert sql == "SELECT * FROM a LEFT JOIN b ON a.id = b.id WHERE a.x = 1"

    def test_three_table_chain(self, convert) -> None:
        """Chained outer joins are placed in dependency order."""
        sql, context = convert('oracle', 'postgresql',
                               "SELECT * FROM a, b, c WHERE a.id = b.id(+) AND b.id = c.id(+)")
        assert sql == "SELECT * FROM a LEFT JOIN b ON a.id = b.id LEFT JOIN c ON b.id = c.id"
        assert WarningKind.MANUAL_REVIEW_NEEDED not in _kinds(context)

    def test_unjoined_table_kept_as_cross_join(self, convert) -> None:
        """A table outside every outer join stays a comma join and is flagged."""
        sql, context = convert('oracle', 'mysql',
                               "SELECT * FROM a, b, c, d WHERE a.id = b.id(+) AND a.id = c.id(+) AND c.k = d.k")
        assert sql == "SELECT * FROM a LEFT JOIN b ON a.id = b.id LEFT JOIN c ON a.id = c.id, d WHERE c.k = d.k"
        assert WarningKind.MANUAL_REVIEW_NEEDED in _kinds(context)

    def test_unsupported_shape_left_alone(self, convert) -> None:
        """A (+) inside an expression is kept with a warning."""
        original = "SELECT * FROM a, b WHERE a.id = NVL(b.id(+), 0)"
        sql, context = convert('oracle', 'postgresql', original)
        assert '(+)' in sql
        assert WarningKind.MANUAL_REVIEW_NEEDED in _kinds(context)


class TestStringConcat:
    """Test || and CONCAT() rewrites."""

    def test_operator_chain_to_concat(self, convert) -> None:
        """A || chain becomes one CONCAT call toward MySQL."""
        sql, context = convert('oracle', 'mysql', "SELECT first_name || ' ' || last_name AS n FROM emp")
        assert sql == "SELECT CONCAT(first_name, ' ', last_name) AS n FROM emp"
        assert WarningKind.SYNTAX_DIFFERENCE in _kinds(context)

    def test_operator_inside_literal_untouched(self, convert) -> None:
        """|| inside a literal is data."""
        sql, _ = convert('oracle', 'mysql', "SELECT 'a || b' FROM t")
        assert sql == "SELECT 'a || b' FROM t"

    def test_concat_to_operator(self, convert) -> None:
        """CONCAT becomes a || chain from MySQL."""
        sql, _ = convert('mysql', 'postgresql', "SELECT CONCAT(first_name, ' ', last_name) FROM emp")
        assert sql == "SELECT first_name || ' ' || last_name FROM emp"

    def test_arithmetic_on_the_left_joins_the_operand(self, convert) -> None:
        """Oracle reads x + y || z as (x + y) || z."""
        sql, _ = convert('oracle', 'mysql', "SELECT x + y || z FROM t")
        assert sql == "SELECT CONCAT(x + y, z) FROM t"

    def test_arithmetic_after_chain(self, convert) -> None:
        """A + after the chain applies to the concatenated value in Oracle."""
        sql, _ = convert('oracle', 'mysql', "SELECT a || b + c || d FROM t")
        assert sql == "SELECT CONCAT(CONCAT(a, b) + c, d) FROM t"

    def test_multiplication_binds_first(self, convert) -> None:
        """* and / are evaluated before ||."""
        sql, _ = convert('oracle', 'mysql', "SELECT a || b * c FROM t")
        assert sql == "SELECT CONCAT(a, b * c) FROM t"


class TestDateArithmetic:
    """Test date arithmetic rewrites."""

    def test_add_months(self, convert) -> None:
        """ADD_MONTHS becomes DATE_ADD or an interval sum."""
        mysql, _ = convert('oracle', 'mysql', "SELECT ADD_MONTHS(hire_date, 6) FROM emp")
        pg, _ = convert('oracle', 'postgresql', "SELECT ADD_MONTHS(hire_date, 6) FROM emp")
        assert mysql == "SELECT DATE_ADD(hire_date, INTERVAL 6 MONTH) FROM emp"
        assert pg == "SELECT (hire_date + INTERVAL '6 months') FROM emp"

    def test_date_plus_days(self, convert) -> None:
        """date + n adds days."""
        mysql, _ = convert('oracle', 'mysql', "SELECT hire_date + 30 FROM emp")
        pg, _ = convert('oracle', 'postgresql', "SELECT hire_date + 30 FROM emp")
        assert mysql == "SELECT DATE_ADD(hire_date, INTERVAL 30 DAY) FROM emp"
        assert pg == "SELECT (hire_date + INTERVAL '30 days') FROM emp"

    def test_trunc_date(self, convert) -> None:
        """TRUNC(date) truncates to the day."""
        mysql, _ = convert('oracle', 'mysql', "SELECT TRUNC(hire_date) FROM emp")
        pg, _ = convert('oracle', 'postgresql', "SELECT TRUNC(hire_date) FROM emp")
        assert mysql == "SELECT DATE(hire_date) FROM emp"
        assert pg == "SELECT DATE_TRUNC('day', hire_date) FROM emp"

    def test_numeric_trunc(self, convert) -> None:
        """TRUNC(x, n) on a number becomes TRUNCATE for MySQL."""
        sql, _ = convert('oracle', 'mysql', "SELECT TRUNC(salary, 2) FROM emp")
        assert sql == "SELECT TRUNCATE(salary, 2) FROM emp"


class TestNumericCast:
    """Test TO_NUMBER rewrites."""

    def test_to_number(self, convert) -> None:
        """TO_NUMBER(x) becomes a CAST."""
        mysql, context = convert('oracle', 'mysql', "SELECT TO_NUMBER(code) FROM t")
        pg, _ = convert('oracle', 'postgresql', "SELECT TO_NUMBER(code) FROM t")
        assert mysql == "SELECT CAST(code AS DECIMAL) FROM t"
        assert pg == "SELECT CAST(code AS NUMERIC) FROM t"
        assert WarningKind.DATA_TYPE_MISMATCH in _kinds(context)


class TestWindowFunctions:
    """Test analytic extensions."""

    def test_keep_dense_rank(self, convert) -> None:
        """KEEP (DENSE_RANK FIRST ...) becomes FIRST_VALUE."""
        sql, _ = convert('oracle', 'postgresql',
                         "SELECT MAX(sal) KEEP (DENSE_RANK FIRST ORDER BY hiredate) FROM emp")
        assert 'FIRST_VALUE(sal) OVER (ORDER BY hiredate)' in sql
        assert 'KEEP' not in sql

    def test_listagg(self, convert) -> None:
        """LISTAGG becomes STRING_AGG or GROUP_CONCAT."""
        sql = "SELECT LISTAGG(ename, ',') WITHIN GROUP (ORDER BY ename) FROM emp"
        pg, _ = convert('oracle', 'postgresql', sql)
        mysql, _ = convert('oracle', 'mysql', sql)
        assert "STRING_AGG(ename, ',' ORDER BY ename)" in pg
        assert "GROUP_CONCAT(ename ORDER BY ename SEPARATOR ',')" in mysql

    def test_group_concat_without_order(self, convert) -> None:
        """An unordered GROUP_CONCAT gets ORDER BY NULL and a note that the order is undefined."""
        sql, context = convert('mysql', 'oracle', "SELECT GROUP_CONCAT(name) FROM t")
        assert "LISTAGG(name, ',') WITHIN GROUP (ORDER BY NULL)" in sql
        notes = [w for w in context.warnings if 'order is undefined' in w.message]
        assert notes and notes[0].severity is Severity.INFO

    def test_ratio_to_report(self, convert) -> None:
        """RATIO_TO_REPORT becomes a division by a windowed SUM."""
        sql, _ = convert('oracle', 'postgresql',
                         "SELECT RATIO_TO_REPORT(sal) OVER (PARTITION BY deptno) FROM emp")
        assert 'sal / SUM(sal) OVER (PARTITION BY deptno)' in sql

    def test_percentile_unsupported_in_mysql(self, convert) -> None:
        """PERCENTILE_CONT is replaced by a NULL marker toward MySQL."""
        sql, context = convert('oracle', 'mysql',
                               "SELECT PERCENTILE_CONT(0.5) WITHIN GROUP (ORDER BY sal) FROM emp")
        assert 'NULL /* PERCENTILE_CONT - not supported in MySQL */' in sql
        assert WarningKind.UNSUPPORTED_FUNCTION in _kinds(context)


class TestCte:
    """Test WITH clause rewrites."""

    def test_recursive_keyword_added(self, convert) -> None:
        """A self-referencing Oracle CTE gets RECURSIVE."""
        sql, _ = convert('oracle', 'postgresql',
                         "WITH t (n) AS (SELECT 1 FROM dual UNION ALL SELECT n + 1 FROM t WHERE n < 5) "
                         "SELECT n FROM t")
        assert sql.startswith('WITH RECURSIVE t (n) AS (')

    def test_recursive_keyword_removed(self, convert) -> None:
        """Oracle rejects RECURSIVE."""
        sql, _ = convert('postgresql', 'oracle',
                         "WITH RECURSIVE t (n) AS (SELECT 1 UNION ALL SELECT n + 1 FROM t WHERE n < 5) "
                         "SELECT n FROM t")
        assert sql.startswith('WITH t (n) AS (')

    def test_plain_cte_untouched(self, convert) -> None:
        """A non-recursive CTE gets no keyword."""
        original = "WITH x AS (SELECT id FROM t) SELECT id FROM x"
        sql, _ = convert('oracle', 'mysql', original)
        assert sql == original


class TestHierarchical:
    """Test CONNECT BY rewrites."""

    def test_connect_by_to_recursive_cte(self, convert) -> None:
        """A simple hierarchy becomes a recursive CTE."""
        sql, _ = convert('oracle', 'postgresql',
                         "SELECT employee_id, name FROM employees "
                         "START WITH manager_id IS NULL CONNECT BY PRIOR employee_id = manager_id")
        assert sql.startswith(f'WITH RECURSIVE {CTE_NAME} AS (')
        assert 'UNION ALL' in sql
        assert f'FROM {CTE_NAME}' in sql
        assert 'CONNECT BY' not in sql.upper()
        assert 'manager_id IS NULL' in sql

    def test_unsupported_hierarchy_gets_guide(self, convert) -> None:
        """A hierarchy over a join keeps its text and gets a guide comment."""
        sql, context = convert('oracle', 'mysql',
                               "SELECT e.id FROM emp e, dept d WHERE e.dept = d.id "
                               "START WITH e.mgr IS NULL CONNECT BY PRIOR e.id = e.mgr")
        assert GUIDE_MARKER in sql
        assert 'CONNECT BY' in sql
        assert WarningKind.MANUAL_REVIEW_NEEDED in _kinds(context)

    def test_level_matches_cte_column(self, convert) -> None:
        """LEVEL in the outer query is spelled like the CTE column."""
        sql, _ = convert('oracle', 'postgresql',
                         "SELECT empno, LEVEL FROM emp START WITH mgr IS NULL CONNECT BY PRIOR empno = mgr")
        assert 'SELECT empno, level' in sql
        assert '1 AS level' in sql
        assert 'LEVEL' not in sql


class TestSequencesAndQuotes:
    """Test sequence access, DUAL and identifier quoting."""

    def test_sequence_to_postgresql(self, convert) -> None:
        """seq.NEXTVAL becomes nextval('seq')."""
        sql, _ = convert('oracle', 'postgresql', "INSERT INTO t (id) VALUES (order_seq.NEXTVAL)")
        assert sql == "INSERT INTO t (id) VALUES (nextval('order_seq'))"

    def test_sequence_to_oracle(self, convert) -> None:
        """nextval('seq') becomes seq.NEXTVAL and gains FROM DUAL."""
        sql, _ = convert('postgresql', 'oracle', "SELECT nextval('order_seq')")
        assert sql == "SELECT order_seq.NEXTVAL FROM DUAL"

    def test_sequence_to_mysql(self, convert) -> None:
        """MySQL has no sequences."""
        sql, context = convert('oracle', 'mysql', "SELECT order_seq.NEXTVAL FROM dual")
        assert 'NULL /* order_seq.NEXTVAL - not supported in MySQL */' in sql
        assert any(w.severity is Severity.ERROR for w in context.warnings)

    def test_from_dual_added(self, convert) -> None:
        """A SELECT without FROM gains FROM DUAL toward Oracle."""
        sql, _ = convert('mysql', 'oracle', "SELECT NOW()")
        assert sql == "SELECT SYSDATE FROM DUAL"

    def test_quotes_toward_mysql(self, convert) -> None:
        """Double-quoted identifiers become backticks."""
        sql, _ = convert('postgresql', 'mysql', 'SELECT "Order Id" FROM "Orders"')
        assert sql == 'SELECT `Order Id` FROM `Orders`'

    def test_quotes_from_mysql(self, convert) -> None:
        """Backticks become double quotes."""
        sql, _ = convert('mysql', 'oracle', 'SELECT `id` FROM `orders`')
        assert sql == 'SELECT "id" FROM "orders"'
