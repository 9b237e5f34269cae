"""Unit tests for Slack mrkdwn conversion."""

from slack_cli_bridge.utils.formatting import code_block, markdown_to_slack


class TestMarkdownToSlack:
    def test_headers_become_bold(self):
        assert markdown_to_slack("# Title\n### Sub") == "*Title*\n*Sub*"

    def test_double_star_bold(self):
        assert markdown_to_slack("a **bold** word") == "a *bold* word"

    def test_double_underscore_bold(self):
        assert markdown_to_slack("__bold__") == "*bold*"

    def test_strikethrough(self):
        assert markdown_to_slack("~~gone~~") == "~gone~"

    def test_single_asterisk_untouched(self):
        assert markdown_to_slack("*already slack*") == "*already slack*"

    def test_hash_without_space_is_not_header(self):
        assert markdown_to_slack("#channel") == "#channel"


class TestCodeBlock:
    def test_wraps_text(self):
        assert code_block("x = 1") == "```\nx = 1\n```"
