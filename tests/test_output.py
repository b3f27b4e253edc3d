"""
Tests for output helpers with macOS commands mocked.
"""

from unittest.mock import patch


class TestEscape:

    def test_escapes_quotes_and_newlines(self):
        from dualscribe.output import _escape_for_applescript

        assert _escape_for_applescript('say "hi"\n') == 'say \\"hi\\"\\n'
        assert _escape_for_applescript("a\\b") == "a\\\\b"


class TestSystemOutputSink:

    def test_inject_primary_pastes(self):
        from dualscribe.output import SystemOutputSink

        with patch("dualscribe.output.paste_text") as paste, \
                patch("dualscribe.output.copy_to_clipboard") as copy:
            SystemOutputSink().inject_primary("hello")

        paste.assert_called_once_with("hello")
        copy.assert_not_called()

    def test_refinement_goes_to_clipboard_only(self):
        from dualscribe.output import SystemOutputSink

        with patch("dualscribe.output.paste_text") as paste, \
                patch("dualscribe.output.copy_to_clipboard") as copy, \
                patch("dualscribe.output.notify") as notify:
            SystemOutputSink().publish_refinement("there")

        copy.assert_called_once_with("there")
        paste.assert_not_called()
        notify.assert_called_once()

    def test_refinement_notification_optional(self):
        from dualscribe.output import SystemOutputSink

        with patch("dualscribe.output.copy_to_clipboard"), \
                patch("dualscribe.output.notify") as notify:
            SystemOutputSink(notify_refinements=False).publish_refinement("there")

        notify.assert_not_called()


class TestPasteText:

    def test_restores_previous_clipboard(self):
        from dualscribe import output

        with patch.object(output, "get_clipboard", return_value="old"), \
                patch.object(output, "copy_to_clipboard") as copy, \
                patch.object(output.subprocess, "run") as run, \
                patch.object(output.time, "sleep"):
            output.paste_text("new")

        assert [c.args[0] for c in copy.call_args_list] == ["new", "old"]
        assert run.call_args.args[0][0] == "osascript"

    def test_empty_text_does_nothing(self):
        from dualscribe import output

        with patch.object(output.subprocess, "run") as run:
            output.paste_text("")

        run.assert_not_called()
