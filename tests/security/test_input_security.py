"""
Security tests for input screening and error redaction.

These tests verify that Q&A input is screened before it reaches the tree:
- Script tags are rejected
- SQL keywords and comment/terminator tokens are rejected
- Special-character-heavy input is rejected
- Control characters are stripped from accepted input
- Error messages never leak personal data
"""

import sys
from pathlib import Path

import pytest

sys.path.insert(0, str(Path(__file__).parent.parent.parent))

from conversation_grading.grading_system import ConversationGradingSystem
from conversation_grading.types import QAPair, ValidationError
from conversation_grading.validation import check_security_constraints, safe_error_message


@pytest.fixture
def system():
    return ConversationGradingSystem("security-session")


@pytest.mark.security
class TestScriptInjection:
    """Tests that script content is blocked."""

    @pytest.mark.parametrize(
        "text",
        [
            "<script>alert(1)</script>",
            "Hello <SCRIPT type='text/javascript'>steal()</SCRIPT> there, this is long text",
        ],
    )
    def test_script_tags_rejected(self, text):
        with pytest.raises(ValidationError, match="script"):
            check_security_constraints(text)

    @pytest.mark.asyncio
    async def test_script_in_answer_rejected(self, system):
        qa = QAPair("What is a browser?", "It runs <script>evil()</script> code for you")

        with pytest.raises(ValidationError):
            await system.add_qa_pair(qa)

        assert system.get_stats().total_nodes == 0


@pytest.mark.security
class TestSQLInjection:
    """Tests that SQL patterns are blocked."""

    @pytest.mark.parametrize(
        "text",
        [
            "please SELECT everything from the users table",
            "just drop table users now",
            "Union all the results",
            "name here -- trailing comment",
            "first statement; second statement",
            "comment /* hidden */ here",
        ],
    )
    def test_sql_patterns_rejected(self, text):
        with pytest.raises(ValidationError, match="SQL"):
            check_security_constraints(text)

    def test_keywords_in_prose_rejected(self):
        """Ordinary sentences using SQL words are refused while checks are on."""
        with pytest.raises(ValidationError, match="SQL"):
            check_security_constraints("We create a plan and update it weekly")

    def test_keyword_inside_word_allowed(self):
        """Keywords only match as whole words."""
        check_security_constraints("The selection was updated by the creator")

    @pytest.mark.asyncio
    async def test_sql_in_question_rejected(self, system):
        with pytest.raises(ValidationError):
            await system.add_qa_pair(QAPair("How do I delete rows?", "Carefully."))


@pytest.mark.security
class TestSpecialCharacters:
    """Tests for the special-character density check."""

    def test_dense_special_characters_rejected(self):
        with pytest.raises(ValidationError, match="special characters"):
            check_security_constraints("{{{[[[$$$]]]}}}")

    def test_ordinary_punctuation_allowed(self):
        check_security_constraints("What is recursion? It is a function calling itself (often).")

    def test_threshold_is_ten_percent(self):
        check_security_constraints("a" * 90 + "$" * 10)

        with pytest.raises(ValidationError):
            check_security_constraints("a" * 89 + "$" * 11)


@pytest.mark.security
class TestSanitization:
    """Accepted input is stored without control characters."""

    @pytest.mark.asyncio
    async def test_control_characters_stripped(self, system):
        node_id = await system.add_qa_pair(
            QAPair("What is\x1b[31m color?", "Terminal\x00 escapes\x7f.")
        )
        stored = system.get_node(node_id).metadata.qa_pairs[0]

        assert "\x1b" not in stored.question
        assert stored.answer == "Terminal escapes."


@pytest.mark.security
class TestErrorRedaction:
    """Error messages do not leak personal data."""

    def test_email_redacted(self):
        message = safe_error_message(ValueError("lookup failed for alice@example.org"))

        assert "alice@example.org" not in message

    def test_card_and_ssn_redacted(self):
        message = safe_error_message(ValueError("card 1234-5678-9012-3456 ssn 987-65-4320"))

        assert "1234-5678-9012-3456" not in message
        assert "987-65-4320" not in message

    def test_validation_error_field_kept(self):
        try:
            check_security_constraints("<script>x</script>")
        except ValidationError as e:
            assert e.field == "input"
        else:
            pytest.fail("script content accepted")
