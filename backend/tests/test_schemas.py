"""
BookSwap Backend - Request Schema Tests
=========================================

What:  Tests for input cleaning and field rules shared by the request bodies.
How:   Schemas are built directly; no database or HTTP involved.

What we test:
    ✅ Control characters are removed from free text, newlines and tabs kept
    ✅ A value made only of control characters counts as empty
    ✅ ISBNs need 10 or 13 digits once separators are removed
    ✅ Chat attachments only accept http(s) URLs
"""

import uuid

import pytest
from pydantic import ValidationError as PydanticValidationError

from bookswap.schemas.book import BookCreate, BookUpdate
from bookswap.schemas.chat import ChatSendRequest
from bookswap.schemas.common import strip_control_characters
from bookswap.schemas.profile import ProfileUpdate
from bookswap.schemas.swap import SwapComplete, SwapCreate


def chat_message(**fields):
    return ChatSendRequest(action="send", recipient_id=uuid.uuid4(), message="Hi", **fields)


class TestControlCharacters:

    def test_strip_keeps_newlines_and_tabs(self):
        assert strip_control_characters("a\x00b\x07c\x1b\x7fd\n\te") == "abcd\n\te"

    def test_non_strings_pass_through(self):
        assert strip_control_characters(None) is None
        assert strip_control_characters(5) == 5

    def test_book_text_is_cleaned(self):
        book = BookCreate(
            title="Du\x00ne\x07",
            authors=["Frank\x1b Herbert"],
            genre="Sci\x00-Fi",
            description="Arrakis.\x00\nSpice.",
        )

        assert book.title == "Dune"
        assert book.authors == ["Frank Herbert"]
        assert book.genre == "Sci-Fi"
        assert book.description == "Arrakis.\nSpice."

    def test_title_of_only_control_characters_is_empty(self):
        with pytest.raises(PydanticValidationError):
            BookCreate(title="\x00\x01\x02", authors=["Frank Herbert"])

    def test_update_text_is_cleaned(self):
        assert BookUpdate(description="worn\x00 spine").description == "worn spine"

    def test_profile_text_is_cleaned(self):
        profile = ProfileUpdate(full_name="Ada\x00 Lovelace", bio="Reader\x1b", location="Lon\x08don")

        assert profile.full_name == "Ada Lovelace"
        assert profile.bio == "Reader"
        assert profile.location == "London"

    def test_swap_text_is_cleaned(self):
        assert SwapCreate(book_id=uuid.uuid4(), message="Swap?\x00").message == "Swap?"
        assert SwapComplete(rating=5, feedback="Great\x07").feedback == "Great"

    def test_chat_message_is_cleaned(self):
        assert chat_message(attachment_type="image/png\x00").attachment_type == "image/png"
        assert ChatSendRequest(
            action="send", recipient_id=uuid.uuid4(), message="hello\x00"
        ).message == "hello"

    def test_chat_message_of_only_control_characters_is_rejected(self):
        with pytest.raises(PydanticValidationError):
            ChatSendRequest(action="send", recipient_id=uuid.uuid4(), message="\x00\x00")


class TestIsbn:

    @pytest.mark.parametrize(
        "isbn",
        ["978-0-14-143954-9", "9780141439549", "0-14-143954-X", "0 14 143954 1", " 0141439541 "],
    )
    def test_valid_isbns(self, isbn):
        book = BookCreate(title="Persuasion", authors=["Jane Austen"], isbn=isbn)
        assert book.isbn == isbn.strip()

    @pytest.mark.parametrize(
        "isbn",
        ["----------", "          ", "- - - - - - -", "12345", "978-0-14-14395", "97801414395490", "X141439541", "014143954a"],
    )
    def test_invalid_isbns(self, isbn):
        with pytest.raises(PydanticValidationError):
            BookCreate(title="Persuasion", authors=["Jane Austen"], isbn=isbn)

    def test_update_checks_isbn_too(self):
        with pytest.raises(PydanticValidationError):
            BookUpdate(isbn="----------")


class TestAttachmentUrl:

    @pytest.mark.parametrize(
        "url",
        ["javascript:alert(1)", "data:text/html;base64,PHNjcmlwdD4=", "vbscript:msgbox(1)", "file:///etc/passwd", "not a url"],
    )
    def test_unsafe_urls_rejected(self, url):
        with pytest.raises(PydanticValidationError):
            chat_message(attachment_url=url)

    def test_https_url_accepted(self):
        message = chat_message(attachment_url="https://files.test/photo.jpg")
        assert str(message.attachment_url) == "https://files.test/photo.jpg"
