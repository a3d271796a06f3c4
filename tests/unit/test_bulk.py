"""
Unit tests for the threaded bulk engines.
"""
import math
import threading
import time

import pytest
from bulksql.bulk import bulk_execute_command, bulk_get_count, bulk_get_rows
from bulksql.bulk import bulk_insert_entities, dispatch_chunks, execute_statement
from bulksql.bulk import query_statement
from bulksql.exceptions import ChunkSizeError, PlaceholderMismatch
from bulksql.sql import BulkExecuteStatement, BulkInsertStatement, sql


def as_tuple(row):
    return tuple(row)


class TestBulkExecuteCommand:
    """Test chunked execution of bulk statements"""

    def test_fixed_and_bulk_parameters(self, create_recording_database):
        """Test fixed parameters are repeated in every chunk"""
        database = create_recording_database(max_variable_number=10)
        statement = BulkExecuteStatement('STATEMENT ?,?,? IN (?)', [1, 2, 3], list(range(4, 13)))

        bulk_execute_command(database, statement)

        assert sorted(database.calls) == [
            ('STATEMENT ?,?,? IN (?,?)', [1, 2, 3, 11, 12]),
            ('STATEMENT ?,?,? IN (?,?,?,?,?,?,?)', [1, 2, 3, 4, 5, 6, 7, 8, 9, 10]),
            ]

    def test_empty_bulk_parameters(self, create_recording_database):
        """Test that an empty bulk group dispatches nothing"""
        database = create_recording_database(max_variable_number=10)

        bulk_execute_command(database, sql('DELETE FROM t WHERE id IN ({})', []))

        assert database.calls == []

    def test_placeholder_mismatch_before_dispatch(self, create_recording_database):
        """Test that a malformed statement fails without dispatching"""
        database = create_recording_database(max_variable_number=10)
        statement = BulkExecuteStatement('STATEMENT', (), (1,))

        with pytest.raises(PlaceholderMismatch):
            bulk_execute_command(database, statement)
        assert database.calls == []

    def test_no_room_for_bulk_values(self, create_recording_database):
        """Test the limit must leave room after fixed parameters"""
        database = create_recording_database(max_variable_number=3)
        statement = BulkExecuteStatement('? ? ? IN (?)', (1, 2, 3), (4,))

        with pytest.raises(ChunkSizeError):
            bulk_execute_command(database, statement)
        assert database.calls == []

    @pytest.mark.parametrize(('total', 'limit'), [(1, 1), (7, 7), (8, 7), (100, 9), (2000, 999)])
    def test_dispatch_count(self, create_recording_database, total, limit):
        """Test one dispatch per chunk of the variable limit"""
        database = create_recording_database(max_variable_number=limit)

        bulk_execute_command(database, sql('DELETE FROM t WHERE id IN ({})', list(range(total))))

        assert len(database.calls) == math.ceil(total / limit)
        assert sorted(p for _, parameters in database.calls for p in parameters) == list(range(total))

    def test_input_not_mutated(self, create_recording_database):
        """Test that the caller's bulk list is left unchanged"""
        database = create_recording_database(max_variable_number=2)
        ids = [5, 4, 3, 2, 1]

        bulk_execute_command(database, sql('DELETE FROM t WHERE id IN ({})', ids))

        assert ids == [5, 4, 3, 2, 1]

    def test_first_failure_propagates(self, create_recording_database):
        """Test that a failing chunk fails the whole call with its own error"""
        error = RuntimeError('chunk failed')

        def fail_on(statement, parameters):
            return error if 3 in parameters else None

        database = create_recording_database(max_variable_number=2, fail_on=fail_on)

        with pytest.raises(RuntimeError) as exc_info:
            bulk_execute_command(database, sql('DELETE FROM t WHERE id IN ({})', [1, 2, 3, 4]))
        assert exc_info.value is error

    def test_max_workers_from_database(self, create_recording_database):
        """Test that dispatches never exceed the database's worker limit"""
        active = []
        peak = []
        lock = threading.Lock()

        def track(statement, parameters):
            with lock:
                active.append(1)
                peak.append(len(active))
            time.sleep(0.01)
            with lock:
                active.pop()

        database = create_recording_database(max_variable_number=1, fail_on=track, max_workers=2)

        bulk_execute_command(database, sql('DELETE FROM t WHERE id IN ({})', list(range(10))))

        assert len(database.calls) == 10
        assert max(peak) <= 2


class TestBulkGetRows:
    """Test chunked queries"""

    def test_rows_in_chunk_order(self, create_recording_database):
        """Test rows are concatenated by chunk index, not completion order"""
        def respond(statement, parameters):
            return [{'id': p} for p in parameters]

        database = create_recording_database(max_variable_number=3, respond=respond)
        statement = sql('SELECT id FROM t WHERE id IN ({})', list(range(10)))

        rows = bulk_get_rows(database, statement)

        assert [row['id'] for row in rows] == list(range(10))

    def test_fixed_parameters_not_in_rows(self, create_recording_database):
        """Test rows come only from the responses"""
        def respond(statement, parameters):
            return [{'id': p} for p in parameters[1:]]

        database = create_recording_database(max_variable_number=3, respond=respond)
        statement = sql('SELECT id FROM t WHERE owner = {} AND id IN ({})', 'bob', [1, 2, 3])

        rows = bulk_get_rows(database, statement)

        assert [row['id'] for row in rows] == [1, 2, 3]
        assert all(parameters[0] == 'bob' for _, parameters in database.calls)

    def test_empty(self, create_recording_database):
        """Test an empty bulk group returns no rows"""
        database = create_recording_database()

        assert bulk_get_rows(database, sql('SELECT * FROM t WHERE id IN ({})', [])) == []
        assert database.calls == []


class TestBulkGetCount:
    """Test summed count queries"""

    def test_counts_summed(self, create_recording_database):
        """Test the count of every chunk is added up"""
        def respond(statement, parameters):
            return [{'COUNT(*)': len(parameters)}]

        database = create_recording_database(max_variable_number=4, respond=respond)
        statement = sql('SELECT COUNT(*) FROM t WHERE id IN ({})', list(range(10)))

        assert bulk_get_count(database, statement) == 10
        assert len(database.calls) == 3

    def test_string_count(self, create_recording_database):
        """Test counts reported as strings are converted"""
        database = create_recording_database(max_variable_number=2,
                                             respond=lambda s, p: [{'COUNT(*)': '2'}])
        statement = sql('SELECT COUNT(*) FROM t WHERE id IN ({})', [1, 2, 3, 4])

        assert bulk_get_count(database, statement) == 4

    def test_chunk_without_rows(self, create_recording_database):
        """Test that a chunk returning no rows counts as zero"""
        def respond(statement, parameters):
            return [] if 1 in parameters else [{'COUNT(*)': 5}]

        database = create_recording_database(max_variable_number=1, respond=respond)
        statement = sql('SELECT COUNT(*) FROM t WHERE id IN ({})', [1, 2])

        assert bulk_get_count(database, statement) == 5

    def test_empty(self, create_recording_database):
        """Test that an empty bulk group counts zero"""
        database = create_recording_database()

        assert bulk_get_count(database, sql('SELECT COUNT(*) FROM t WHERE id IN ({})', [])) == 0


class TestBulkInsertEntities:
    """Test chunked multi-row inserts"""

    def test_rows_grouped_by_arity(self, create_recording_database):
        """Test rows per statement follow the limit divided by the arity"""
        database = create_recording_database(max_variable_number=10)
        statement = BulkInsertStatement('STATEMENT VALUES (?)', as_tuple)
        rows = [(1, 2, 3), (4, 5, 6), (7, 8, 9), (10, 11, 12)]

        bulk_insert_entities(database, rows, statement)

        assert sorted(database.calls, key=lambda call: call[1][0]) == [
            ('STATEMENT VALUES (?,?,?),(?,?,?),(?,?,?)', [1, 2, 3, 4, 5, 6, 7, 8, 9]),
            ('STATEMENT VALUES (?,?,?)', [10, 11, 12]),
            ]

    def test_entities_not_mutated(self, create_recording_database):
        """Test that the input rows are left unchanged"""
        database = create_recording_database(max_variable_number=4)
        rows = [{'a': i, 'b': str(i)} for i in range(5)]
        expected = [dict(row) for row in rows]

        bulk_insert_entities(database, rows, sql('INSERT INTO t (a, b) VALUES ({})',
                                                 lambda row: (row['a'], row['b'])))

        assert rows == expected
        assert len(database.calls) == 3

    def test_empty_entities(self, create_recording_database):
        """Test that no rows dispatch nothing"""
        database = create_recording_database()

        bulk_insert_entities(database, [], BulkInsertStatement('INSERT INTO t VALUES (?)', as_tuple))

        assert database.calls == []

    def test_arity_mismatch_before_dispatch(self, create_recording_database):
        """Test that a ragged row fails before anything is sent"""
        database = create_recording_database(max_variable_number=2)
        statement = BulkInsertStatement('INSERT INTO t VALUES (?)', as_tuple)

        with pytest.raises(PlaceholderMismatch):
            bulk_insert_entities(database, [(1, 2), (3, 4), (5,)], statement)
        assert database.calls == []


class TestDispatchChunks:
    """Test the dispatch helper"""

    def test_results_in_plan_order(self):
        """Test results follow the plan, not completion order"""
        def op(text, parameters):
            time.sleep(0.001 * (5 - parameters[0]))
            return parameters[0]

        plan = [('?', [i]) for i in range(5)]

        assert dispatch_chunks(op, plan, max_workers=5) == [0, 1, 2, 3, 4]

    def test_single_chunk_inline(self):
        """Test that one chunk runs on the calling thread"""
        caller = threading.get_ident()

        assert dispatch_chunks(lambda text, parameters: threading.get_ident(), [('?', [1])]) == [caller]

    def test_empty_plan(self):
        """Test that an empty plan runs nothing"""
        assert dispatch_chunks(lambda text, parameters: 1 / 0, []) == []

    def test_earliest_failing_chunk_raised(self):
        """Test that the error of the lowest failing chunk is raised"""
        def op(text, parameters):
            raise ValueError(parameters[0])

        with pytest.raises(ValueError, match='0'):
            dispatch_chunks(op, [('?', [0]), ('?', [1])], max_workers=1)


class TestExecuteStatement:
    """Test dispatch by statement shape"""

    def test_plain_statement(self, create_recording_database):
        """Test a plain statement is one call"""
        database = create_recording_database()

        execute_statement(database, sql('DELETE FROM t WHERE id = {}', 1))

        assert database.calls == [('DELETE FROM t WHERE id = ?', [1])]

    def test_bulk_statement(self, create_recording_database):
        """Test a bulk statement is chunked"""
        database = create_recording_database(max_variable_number=2)

        execute_statement(database, sql('DELETE FROM t WHERE id IN ({})', [1, 2, 3]))

        assert len(database.calls) == 2

    def test_insert_statement(self, create_recording_database):
        """Test a bulk insert takes its entities"""
        database = create_recording_database()
        statement = sql('INSERT INTO t (a) VALUES ({})', lambda row: (row,))

        execute_statement(database, statement, [1, 2])

        assert database.calls == [('INSERT INTO t (a) VALUES (?),(?)', [1, 2])]

    def test_insert_without_entities(self, create_recording_database):
        """Test that a bulk insert requires entities"""
        database = create_recording_database()

        with pytest.raises(TypeError):
            execute_statement(database, sql('INSERT INTO t (a) VALUES ({})', as_tuple))

    def test_entities_with_plain_statement(self, create_recording_database):
        """Test that entities are rejected for other shapes"""
        database = create_recording_database()

        with pytest.raises(TypeError):
            execute_statement(database, sql('DELETE FROM t'), [1])

    def test_query_statement(self, create_recording_database):
        """Test queries of plain and bulk statements"""
        database = create_recording_database(max_variable_number=1,
                                             respond=lambda s, p: [{'id': x} for x in p])

        assert query_statement(database, sql('SELECT id FROM t WHERE id = {}', 1)) == [{'id': 1}]
        assert query_statement(database, sql('SELECT id FROM t WHERE id IN ({})', [1, 2])) == [
            {'id': 1}, {'id': 2}]

    def test_query_insert_rejected(self, create_recording_database):
        """Test that an insert cannot be queried"""
        database = create_recording_database()

        with pytest.raises(TypeError):
            query_statement(database, sql('INSERT INTO t (a) VALUES ({})', as_tuple))


if __name__ == '__main__':
    __import__('pytest').main([__file__])
