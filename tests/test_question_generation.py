import json
import unittest

from tests.support import (
    FakeChatModel,
    FakeEmbedder,
    StaticVectorStore,
    add_record,
    match,
    new_session,
    reset_database,
    seed_submission,
)

from repo_interview.errors import (
    DescriptionRequiredError,
    ModelOutputError,
    NoRelevantChunksError,
    SmartInterviewerDisabledError,
)
from repo_interview.services.chunker import CodeChunk
from repo_interview.services.question_generation import (
    QuestionGenerator,
    build_system_prompt,
    clamp_question_count,
    generate_after_indexing,
    generate_for_submission,
    ground_questions,
    parse_model_output,
)
from repo_interview.services.retrieval import Retriever

CHUNKS = [
    CodeChunk("src/auth.js", 41, 240, "function login() {}"),
    CodeChunk("src/db.js", 1, 200, "const pool = {}"),
    CodeChunk("src/routes.js", 1, 80, "router.get()"),
    CodeChunk("src/util.js", 1, 30, "export {}"),
]


def anchor(path, start, end):
    return {"path": path, "startLine": start, "endLine": end}


class GroundingTests(unittest.TestCase):
    def test_fabricated_anchor_is_stripped(self):
        raw = [{
            "prompt": "Why extract the token this way?",
            "anchors": [anchor("src/auth.js", 41, 240), anchor("src/secret.js", 1, 10)],
        }]

        questions, stripped = ground_questions(raw, CHUNKS)

        self.assertEqual(stripped, 1)
        self.assertEqual([a.to_dict() for a in questions[0].anchors], [anchor("src/auth.js", 41, 240)])

    def test_near_miss_line_numbers_are_stripped(self):
        raw = [{"prompt": "Q", "anchors": [anchor("src/auth.js", 40, 240), anchor("src/auth.js", "41", 240)]}]
        questions, stripped = ground_questions(raw, CHUNKS)
        self.assertEqual(stripped, 2)
        self.assertEqual(questions[0].anchors, [])

    def test_question_without_valid_anchors_is_kept(self):
        questions, _ = ground_questions([{"prompt": "How did you test this?", "anchors": []}], CHUNKS)
        self.assertEqual(len(questions), 1)
        self.assertEqual(questions[0].anchors, [])

    def test_anchors_capped_at_three(self):
        raw = [{"prompt": "Q", "anchors": [anchor(c.path, c.start_line, c.end_line) for c in CHUNKS]}]
        questions, stripped = ground_questions(raw, CHUNKS)
        self.assertEqual(len(questions[0].anchors), 3)
        self.assertEqual(stripped, 1)

    def test_unusable_entries_are_dropped(self):
        raw = [
            "not an object",
            {"prompt": "   ", "anchors": []},
            {"anchors": [anchor("src/db.js", 1, 200)]},
            {"prompt": "Valid", "anchors": [True, {"path": ["src/db.js"], "startLine": 1, "endLine": 200}]},
        ]
        questions, stripped = ground_questions(raw, CHUNKS)
        self.assertEqual([q.prompt for q in questions], ["Valid"])
        self.assertEqual(stripped, 2)


class ParsingTests(unittest.TestCase):
    def test_malformed_json_is_fatal(self):
        with self.assertRaises(ModelOutputError):
            parse_model_output('{"questions": [')

    def test_missing_questions_array_is_fatal(self):
        for content in ("", "[]", '{"items": []}', '{"questions": "none"}'):
            with self.assertRaises(ModelOutputError):
                parse_model_output(content)

    def test_clamp_question_count(self):
        self.assertEqual(clamp_question_count(0), 1)
        self.assertEqual(clamp_question_count(9), 4)
        self.assertEqual(clamp_question_count("3"), 3)
        self.assertEqual(clamp_question_count(None), 2)

    def test_custom_instructions_follow_defaults(self):
        prompt = build_system_prompt(1, "Focus on error handling.")
        self.assertIn("exactly 1 interview question ", prompt)
        self.assertIn("Focus on error handling.", prompt)
        self.assertNotIn("Additional Instructions", build_system_prompt(2, "   "))


class GeneratorTests(unittest.TestCase):
    def setUp(self):
        reset_database()
        self.db = new_session()
        self.addCleanup(self.db.close)
        self.submission = seed_submission(self.db, num_interview_questions=3)
        add_record(self.db, self.submission, status="ready")
        self.matches = [
            match("src/auth.js", 41, 240, 0.92, "function login() {}"),
            match("src/db.js", 1, 200, 0.81, "const pool = {}"),
        ]

    def generator(self, reply, matches=None):
        self.chat = FakeChatModel(reply)
        self.embedder = FakeEmbedder()
        store = StaticVectorStore(self.matches if matches is None else matches)
        return QuestionGenerator(Retriever(self.db, self.embedder, store), self.chat)

    def test_every_returned_anchor_is_in_the_retrieved_set(self):
        reply = {"questions": [
            {"prompt": "Why this login flow?", "anchors": [anchor("src/auth.js", 41, 240), anchor("src/fake.js", 1, 9)]},
            {"prompt": "How is the pool sized?", "anchors": [anchor("src/db.js", 1, 200)]},
        ]}
        generator = self.generator(reply)

        result = generator.generate(self.submission.id, "Build an auth service", num_questions=3)

        self.assertEqual(result.retrieved_chunk_count, 2)
        self.assertEqual(result.chunk_paths, ["src/auth.js", "src/db.js"])
        self.assertEqual(result.stripped_anchor_count, 1)
        retrieved = {("src/auth.js", 41, 240), ("src/db.js", 1, 200)}
        for q in result.questions:
            for a in q.anchors:
                self.assertIn((a.path, a.start_line, a.end_line), retrieved)

        system_prompt, user_prompt = self.chat.calls[0]
        self.assertIn("exactly 3 interview questions", system_prompt)
        self.assertIn('1. path: "src/auth.js", startLine: 41, endLine: 240', user_prompt)
        self.assertEqual(self.embedder.calls, [["Build an auth service"]])

    def test_empty_description_fails_before_retrieval(self):
        generator = self.generator({"questions": []})
        with self.assertRaises(DescriptionRequiredError):
            generator.generate(self.submission.id, "  ")
        self.assertEqual(self.embedder.calls, [])
        self.assertEqual(self.chat.calls, [])

    def test_no_chunks_is_distinct_from_not_indexed(self):
        generator = self.generator({"questions": []}, matches=[])
        with self.assertRaises(NoRelevantChunksError):
            generator.generate(self.submission.id, "Build an auth service")
        self.assertEqual(self.chat.calls, [])

    def test_no_valid_questions_is_fatal(self):
        generator = self.generator({"questions": [{"prompt": ""}]})
        with self.assertRaises(ModelOutputError):
            generator.generate(self.submission.id, "Build an auth service")

    def test_extra_questions_beyond_requested_count_are_dropped(self):
        self.submission.assessment.num_interview_questions = 1
        self.db.commit()
        reply = {"questions": [
            {"prompt": "Why this login flow?", "anchors": [anchor("src/auth.js", 41, 240)]},
            {"prompt": "How is the pool sized?", "anchors": [anchor("src/db.js", 1, 200)]},
            {"prompt": "What would you test?"},
        ]}
        generator = self.generator(reply)

        rows, result = generate_for_submission(self.db, generator, self.submission)

        self.assertEqual([q.prompt for q in result.questions], ["Why this login flow?"])
        self.assertEqual(len(rows), 1)
        self.db.refresh(self.submission)
        self.assertEqual([q.prompt for q in self.submission.interview_questions], ["Why this login flow?"])
        self.assertIn("exactly 1 interview question based", self.chat.calls[0][0])

    def test_generate_for_submission_replaces_stored_questions(self):
        generator = self.generator({"questions": [{"prompt": "First?", "anchors": [anchor("src/db.js", 1, 200)]}]})
        generate_for_submission(self.db, generator, self.submission)

        self.chat.reply = json.dumps({"questions": [{"prompt": "Second?", "anchors": []}, {"prompt": "Third?"}]})
        rows, result = generate_for_submission(self.db, generator, self.submission)

        self.db.refresh(self.submission)
        self.assertEqual([q.prompt for q in self.submission.interview_questions], ["Second?", "Third?"])
        self.assertEqual([r.position for r in rows], [0, 1])
        self.assertEqual(len(result.questions), 2)

    def test_disabled_interviewer_is_rejected(self):
        self.submission.assessment.smart_interviewer_enabled = False
        self.db.commit()
        generator = self.generator({"questions": []})
        with self.assertRaises(SmartInterviewerDisabledError):
            generate_for_submission(self.db, generator, self.submission)

    def test_post_index_hook_only_fills_missing_questions(self):
        generator = self.generator({"questions": [{"prompt": "Auto?", "anchors": [anchor("src/auth.js", 41, 240)]}]})

        generate_after_indexing(self.db, generator, self.submission.id)
        generate_after_indexing(self.db, generator, self.submission.id)

        self.db.refresh(self.submission)
        self.assertEqual([q.prompt for q in self.submission.interview_questions], ["Auto?"])
        self.assertEqual(len(self.chat.calls), 1)
        self.assertEqual(self.submission.interview_questions[0].anchors, [anchor("src/auth.js", 41, 240)])

    def test_post_index_hook_skips_pending_submissions(self):
        self.submission.status = "pending"
        self.db.commit()
        generator = self.generator({"questions": [{"prompt": "Auto?"}]})
        generate_after_indexing(self.db, generator, self.submission.id)
        self.assertEqual(self.chat.calls, [])

    def test_follow_up_context_uses_tighter_budgets(self):
        matches = [match(f"src/f{i}.py", 1, 100, 0.9 - i / 100, "z" * 3000) for i in range(10)]
        generator = self.generator(None, matches=matches)

        chunks, total = generator.follow_up_context(
            self.submission.id, "How do you refresh tokens?", "I use a rotating refresh token."
        )

        self.assertLessEqual(len(chunks), 6)
        self.assertLessEqual(total, 16000)
        self.assertEqual(total, 15000)
        query = self.embedder.calls[0][0]
        self.assertIn("How do you refresh tokens?", query)
        self.assertIn("I use a rotating refresh token.", query)


if __name__ == "__main__":
    unittest.main()
