"""
api/sample_questions.py — bundled demo rounds

Used by the in-memory Question Bank when no QUESTION_BANK_URL is configured.
"""

from interview_exam.models.question_model import Question, RoundBank, RoundMeta

SAMPLE_ROUNDS = [
    RoundBank(
        meta=RoundMeta(
            round_id="python-mcq",
            name="Python Fundamentals",
            type="MCQ",
            duration_minutes=20,
            questions_count=5,
            domain_id="backend",
            domain_name="Backend Engineering",
        ),
        questions=[
            Question(
                id="py-1",
                type="MCQ",
                question="Which built-in returns the number of items in a list?",
                options=["size()", "len()", "count()", "length()"],
                correct_answer="len()",
            ),
            Question(
                id="py-2",
                type="MCQ",
                question="What does `[1, 2, 3][-1]` evaluate to?",
                options=["1", "3", "IndexError", "None"],
                correct_answer="3",
            ),
            Question(
                id="py-3",
                type="MCQ",
                question="Which keyword creates a generator function?",
                options=["return", "async", "yield", "lambda"],
                correct_answer="yield",
            ),
            Question(
                id="py-4",
                type="MCQ",
                question="Which type is immutable?",
                options=["list", "dict", "set", "tuple"],
                correct_answer="tuple",
            ),
            Question(
                id="py-5",
                type="MCQ",
                question="What is the result of `3 // 2`?",
                options=["1", "1.5", "2", "0"],
                correct_answer="1",
            ),
            Question(
                id="py-6",
                type="MCQ",
                question="Which statement leaves a loop immediately?",
                options=["continue", "pass", "break", "exit"],
                correct_answer="break",
            ),
            Question(
                id="py-7",
                type="MCQ",
                question="Which module provides `deque`?",
                options=["itertools", "collections", "functools", "queue"],
                correct_answer="collections",
            ),
        ],
    ),
    RoundBank(
        meta=RoundMeta(
            round_id="coding-warmup",
            name="Coding Warm-up",
            type="Coding",
            duration_minutes=45,
            questions_count=2,
            domain_id="backend",
            domain_name="Backend Engineering",
        ),
        questions=[
            Question(
                id="code-1",
                type="Coding",
                question="Write a function that returns the largest even number in a list, or None.",
                points=20,
                starter_code="def largest_even(numbers):\n    pass\n",
            ),
            Question(
                id="code-2",
                type="Coding",
                question="Write a function that reverses the words of a sentence.",
                points=20,
                starter_code="def reverse_words(sentence):\n    pass\n",
            ),
        ],
    ),
    RoundBank(
        meta=RoundMeta(
            round_id="project-showcase",
            name="Project Submission",
            type="Project",
            duration_minutes=120,
            questions_count=1,
            domain_id="backend",
            domain_name="Backend Engineering",
        ),
        questions=[
            Question(
                id="proj-1",
                type="Project",
                question="Build a small REST API with CRUD endpoints and deploy it.",
                description="Submit the repository link and the deployed URL.",
            ),
        ],
    ),
]
