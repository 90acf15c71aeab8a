import unittest
from unittest.mock import AsyncMock, call, patch

from src.batch_translator import (
    CountMismatchError,
    InvalidCharacterError,
    SeparatorCollisionError,
    build_combined_payload,
    call_with_retry,
    retry_delay,
    split_translated_payload,
    translate_batch,
    translate_batch_with_retry
)
from src.unit_extractor import Batch, BatchUnit

SEPARATOR = "<|->"


def make_batch(*texts, index=0):
    return Batch(index=index, units=tuple(
        BatchUnit(unit_id=f"unit{i}", text=text, escaped_block=False)
        for i, text in enumerate(texts, 1)
    ))


class TestPayload(unittest.TestCase):

    def test_joins_texts_with_separator(self):
        batch = make_batch("a", "b", "c", "d", "e")
        self.assertEqual(build_combined_payload(batch, SEPARATOR), "a<|->b<|->c<|->d<|->e")

    def test_rejects_text_containing_separator(self):
        batch = make_batch("fine", "not<|->fine")
        with self.assertRaises(SeparatorCollisionError) as ctx:
            build_combined_payload(batch, SEPARATOR)
        self.assertIn("unit2", str(ctx.exception))

    def test_split_checks_piece_count(self):
        self.assertEqual(split_translated_payload("A<|->B", SEPARATOR, 2), ["A", "B"])
        with self.assertRaises(CountMismatchError) as ctx:
            split_translated_payload("A<|->B", SEPARATOR, 3)
        self.assertEqual((ctx.exception.expected, ctx.exception.actual), (3, 2))


class TestTranslateBatch(unittest.IsolatedAsyncioTestCase):

    async def test_pieces_are_assigned_in_order(self):
        translate = AsyncMock(return_value="A<|->B<|->C<|->D<|->E")
        batch = make_batch("a", "b", "c", "d", "e")

        result = await translate_batch(batch, translate, "English", "German", SEPARATOR)

        translate.assert_awaited_once_with("a<|->b<|->c<|->d<|->e", "English", "German")
        self.assertEqual(result, ["A", "B", "C", "D", "E"])

    async def test_count_mismatch_fails(self):
        translate = AsyncMock(return_value="A B C")
        with self.assertRaises(CountMismatchError):
            await translate_batch(make_batch("a", "b", "c"), translate, "English", "German", SEPARATOR)

    async def test_custom_separator(self):
        translate = AsyncMock(return_value="X###Y")
        result = await translate_batch(make_batch("x", "y"), translate, "en", "fr", "###")
        self.assertEqual(result, ["X", "Y"])

    async def test_piece_with_xml_invalid_character_fails(self):
        translate = AsyncMock(return_value="EINS<|->ZWEI\x0b")
        with self.assertRaises(InvalidCharacterError) as ctx:
            await translate_batch(make_batch("one", "two"), translate, "English", "German", SEPARATOR)
        self.assertIn("unit2", str(ctx.exception))


class TestRetry(unittest.IsolatedAsyncioTestCase):

    def test_backoff_doubles_from_one_second(self):
        self.assertEqual([retry_delay(k) for k in range(1, 5)], [1, 2, 4, 8])

    async def test_always_failing_translator_is_called_max_retries_plus_one_times(self):
        translate = AsyncMock(side_effect=ConnectionError("network down"))

        with patch('src.batch_translator.asyncio.sleep', new_callable=AsyncMock) as mock_sleep:
            with self.assertLogs('xliff_translator', level='ERROR') as logs:
                with self.assertRaises(ConnectionError):
                    await translate_batch_with_retry(
                        make_batch("a", "b"), translate, "English", "German", SEPARATOR, max_retries=3
                    )

        self.assertEqual(translate.await_count, 4)
        self.assertEqual(mock_sleep.await_args_list, [call(1.0), call(2.0), call(4.0)])
        self.assertTrue(any("Giving up" in line for line in logs.output))

    async def test_count_mismatch_is_retried_then_succeeds(self):
        translate = AsyncMock(side_effect=["only one piece", "A<|->B"])

        with patch('src.batch_translator.asyncio.sleep', new_callable=AsyncMock) as mock_sleep:
            result = await translate_batch_with_retry(
                make_batch("a", "b"), translate, "English", "German", SEPARATOR, max_retries=3
            )

        self.assertEqual(result, ["A", "B"])
        self.assertEqual(translate.await_count, 2)
        mock_sleep.assert_awaited_once_with(1.0)
        # Every attempt sends the identical request
        self.assertEqual(translate.await_args_list[0], translate.await_args_list[1])

    async def test_xml_invalid_response_is_retried_then_succeeds(self):
        translate = AsyncMock(side_effect=["EINS<|->ZWEI\x0b", "EINS<|->ZWEI"])

        with patch('src.batch_translator.asyncio.sleep', new_callable=AsyncMock) as mock_sleep:
            with self.assertLogs('xliff_translator', level='ERROR'):
                result = await translate_batch_with_retry(
                    make_batch("one", "two"), translate, "English", "German", SEPARATOR, max_retries=3
                )

        self.assertEqual(result, ["EINS", "ZWEI"])
        mock_sleep.assert_awaited_once_with(1.0)

    async def test_zero_retries_gives_up_after_first_failure(self):
        operation = AsyncMock(side_effect=RuntimeError("boom"))

        with patch('src.batch_translator.asyncio.sleep', new_callable=AsyncMock) as mock_sleep:
            with self.assertLogs('xliff_translator', level='ERROR'):
                with self.assertRaises(RuntimeError):
                    await call_with_retry(operation, max_retries=0, description="Batch 1")

        self.assertEqual(operation.await_count, 1)
        mock_sleep.assert_not_awaited()

    async def test_last_error_is_propagated(self):
        operation = AsyncMock(side_effect=[ValueError("first"), KeyError("second")])

        with patch('src.batch_translator.asyncio.sleep', new_callable=AsyncMock):
            with self.assertLogs('xliff_translator', level='ERROR'):
                with self.assertRaises(KeyError):
                    await call_with_retry(operation, max_retries=1, description="Batch 1")

    async def test_separator_collision_is_not_retried(self):
        translate = AsyncMock(return_value="unused")

        with patch('src.batch_translator.asyncio.sleep', new_callable=AsyncMock) as mock_sleep:
            with self.assertRaises(SeparatorCollisionError):
                await translate_batch_with_retry(
                    make_batch("a<|->b"), translate, "English", "German", SEPARATOR, max_retries=3
                )

        translate.assert_not_awaited()
        mock_sleep.assert_not_awaited()


if __name__ == '__main__':
    unittest.main()
