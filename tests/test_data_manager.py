"""
Unit tests for DataManager class and question-bank parsing.
"""
import json
import os
import shutil
import tempfile
import unittest
from pathlib import Path
from unittest.mock import patch

from mcq_quiz.data_manager import DataManager, parse_question_bank
from mcq_quiz.exceptions import EmptyQuestionBankError, MalformedQuestionError
from mcq_quiz.models import Difficulty, Question
from tests.test_fixtures import TestFixtures


class TestParseQuestionBank(unittest.TestCase):
    """Test cases for quiz JSON parsing."""

    def test_valid_data(self):
        bank = parse_question_bank(TestFixtures.create_valid_quiz_json(), name="capitals")

        self.assertEqual(bank.name, "capitals")
        self.assertEqual(bank.title, "Capitals and Numbers")
        self.assertEqual(len(bank.questions), 3)
        first = bank.questions[0]
        self.assertIsInstance(first, Question)
        self.assertEqual(first.text, "What is the capital of Japan?")
        self.assertEqual(first.options, ("Seoul", "Tokyo", "Beijing", "Bangkok"))
        self.assertEqual(first.correct_answer_index, 1)
        self.assertEqual(first.correct_option, "Tokyo")
        self.assertEqual(first.difficulty, Difficulty.EASY)
        self.assertEqual(first.time_limit_seconds, 30)

    def test_missing_time_limit_uses_default(self):
        bank = parse_question_bank(TestFixtures.create_valid_quiz_json(), default_time_limit=45)
        self.assertEqual(bank.questions[2].time_limit_seconds, 45)

    def test_missing_title_uses_name(self):
        data = TestFixtures.create_valid_quiz_json()
        del data["quizTitle"]
        self.assertEqual(parse_question_bank(data, name="numbers").title, "numbers")

    def test_missing_id_uses_position(self):
        data = TestFixtures.create_valid_quiz_json()
        for question in data["questions"]:
            del question["id"]
        bank = parse_question_bank(data)
        self.assertEqual([q.id for q in bank.questions], [0, 1, 2])

    def test_empty_questions_raises(self):
        with self.assertRaises(EmptyQuestionBankError):
            parse_question_bank({"quizTitle": "Empty", "questions": []})

    def test_invalid_structures_raise(self):
        for invalid in TestFixtures.create_invalid_quiz_json_structures():
            with self.subTest(data=invalid):
                with self.assertRaises(MalformedQuestionError):
                    parse_question_bank(invalid)

    def test_non_object_raises(self):
        with self.assertRaises(MalformedQuestionError):
            parse_question_bank(["not", "an", "object"])

    def test_error_names_question_position(self):
        data = TestFixtures.create_valid_quiz_json()
        data["questions"][1]["correctAnswer"] = 7

        with self.assertRaises(MalformedQuestionError) as ctx:
            parse_question_bank(data)
        self.assertIn("Question 1", str(ctx.exception))

    def test_negative_time_limit_raises(self):
        data = TestFixtures.create_valid_quiz_json()
        data["questions"][0]["timeLimit"] = -10
        with self.assertRaises(MalformedQuestionError):
            parse_question_bank(data)


class TestDataManager(unittest.TestCase):
    """Test cases for DataManager functionality."""

    def setUp(self):
        """Set up test fixtures."""
        self.temp_dir = tempfile.mkdtemp()
        self.data_manager = DataManager(self.temp_dir)

    def tearDown(self):
        """Clean up test fixtures."""
        shutil.rmtree(self.temp_dir, ignore_errors=True)

    def write_quiz(self, name, data):
        path = Path(self.temp_dir) / f"{name}.json"
        with open(path, 'w', encoding='utf-8') as f:
            json.dump(data, f, ensure_ascii=False)
        return path

    def test_load_creates_directory_if_not_exists(self):
        non_existent_dir = os.path.join(self.temp_dir, "new_quiz_dir")
        dm = DataManager(non_existent_dir)

        dm.load_quiz_files()

        self.assertTrue(Path(non_existent_dir).exists())

    def test_load_quiz_files_valid_json(self):
        self.write_quiz("capitals", TestFixtures.create_valid_quiz_json())

        loaded = self.data_manager.load_quiz_files()

        self.assertIn("capitals", loaded)
        self.assertEqual(self.data_manager.get_question_count("capitals"), 3)
        self.assertFalse(self.data_manager.has_load_errors())

    def test_load_quiz_files_mixed_valid_invalid(self):
        TestFixtures.create_temp_quiz_files(self.temp_dir)

        loaded = self.data_manager.load_quiz_files()

        self.assertEqual(sorted(loaded), ["large_quiz", "valid_quiz"])
        errors = self.data_manager.get_load_errors()
        self.assertEqual(len(errors), 3)
        self.assertTrue(any(error.startswith("invalid.json") for error in errors))
        self.assertTrue(any(error.startswith("empty_quiz.json") for error in errors))
        self.assertTrue(any(error.startswith("invalid_structure.json") for error in errors))

    def test_non_json_files_ignored(self):
        TestFixtures.create_temp_quiz_files(self.temp_dir)
        self.data_manager.load_quiz_files()
        self.assertNotIn("not_a_quiz", self.data_manager.get_available_quizzes())

    def test_no_json_files_creates_sample_quiz(self):
        loaded = self.data_manager.load_quiz_files()

        self.assertIn("sample_quiz", loaded)
        self.assertTrue(self.data_manager.sample_quiz_created)
        self.assertTrue((Path(self.temp_dir) / "sample_quiz.json").exists())
        questions = self.data_manager.get_quiz_questions("sample_quiz")
        self.assertEqual([q.time_limit_seconds for q in questions], [30, 20, 15])
        self.assertEqual([q.correct_answer_index for q in questions], [1, 0, 2])

    def test_sample_quiz_reloads_from_disk(self):
        self.data_manager.load_quiz_files()

        dm = DataManager(self.temp_dir)
        loaded = dm.load_quiz_files()

        self.assertIn("sample_quiz", loaded)
        self.assertFalse(dm.sample_quiz_created)

    def test_load_single_file_not_found(self):
        with self.assertRaises(OSError):
            self.data_manager.load_quiz_file(Path(self.temp_dir) / "missing.json")

    def test_load_single_file_invalid_json(self):
        path = Path(self.temp_dir) / "broken.json"
        path.write_text("{ nope", encoding='utf-8')
        with self.assertRaises(MalformedQuestionError):
            self.data_manager.load_quiz_file(path)

    def test_default_time_limit_applied(self):
        dm = DataManager(self.temp_dir, default_time_limit=60)
        self.write_quiz("capitals", TestFixtures.create_valid_quiz_json())
        dm.load_quiz_files()
        self.assertEqual(dm.get_quiz_questions("capitals")[2].time_limit_seconds, 60)

    def test_oversized_file_rejected(self):
        self.write_quiz("capitals", TestFixtures.create_valid_quiz_json())

        with patch.object(DataManager, 'MAX_FILE_SIZE', 10):
            loaded = self.data_manager.load_quiz_files()

        self.assertEqual(loaded, {})
        self.assertIn("File too large", self.data_manager.get_load_errors()[0])

    def test_query_helpers(self):
        self.write_quiz("capitals", TestFixtures.create_valid_quiz_json())
        self.data_manager.load_quiz_files()

        self.assertTrue(self.data_manager.quiz_exists("capitals"))
        self.assertFalse(self.data_manager.quiz_exists("missing"))
        self.assertEqual(self.data_manager.get_quiz_count(), 1)
        self.assertEqual(self.data_manager.get_question_count("missing"), 0)
        self.assertIsNone(self.data_manager.get_quiz_questions("missing"))
        self.assertIsNone(self.data_manager.get_quiz("missing"))
        self.assertEqual(self.data_manager.get_quiz("capitals").title, "Capitals and Numbers")
        self.assertEqual(
            self.data_manager.get_difficulty_counts("capitals"),
            {'easy': 1, 'medium': 1, 'hard': 1}
        )

    def test_get_quiz_questions_returns_copy(self):
        self.write_quiz("capitals", TestFixtures.create_valid_quiz_json())
        self.data_manager.load_quiz_files()

        self.data_manager.get_quiz_questions("capitals").clear()

        self.assertEqual(self.data_manager.get_question_count("capitals"), 3)

    def test_reload_clears_previous_state(self):
        path = self.write_quiz("capitals", TestFixtures.create_valid_quiz_json())
        self.data_manager.load_quiz_files()
        path.unlink()
        self.write_quiz("other", TestFixtures.create_valid_quiz_json())

        self.data_manager.load_quiz_files()

        self.assertEqual(self.data_manager.get_available_quizzes(), ["other"])

    def test_unicode_content(self):
        data = TestFixtures.create_valid_quiz_json()
        data["questions"][0]["question"] = "¿Cuál es la capital de Japón? 🗾"
        self.write_quiz("unicode", data)

        self.data_manager.load_quiz_files()

        self.assertEqual(
            self.data_manager.get_quiz_questions("unicode")[0].text,
            "¿Cuál es la capital de Japón? 🗾"
        )

    def test_loading_summary(self):
        TestFixtures.create_temp_quiz_files(self.temp_dir)
        self.data_manager.load_quiz_files()

        summary = self.data_manager.get_loading_summary()

        self.assertEqual(summary['total_quizzes'], 2)
        self.assertTrue(summary['has_errors'])
        self.assertEqual(summary['error_count'], 3)
        self.assertFalse(summary['sample_quiz_created'])
        self.assertEqual(summary['quiz_directory'], self.temp_dir)


if __name__ == '__main__':
    unittest.main()
