"""
Unit tests for the stack frame classifier.
"""

from logsleuth.models.parsed_event import StackFrame
from logsleuth.nodes.stack_classifier import StackFrameClassifier, classify


def frame(path, line=1, symbol="f()"):
    return StackFrame(file=path, line=line, symbol=symbol)


class TestNormalizePath:
    """Tests for path normalization."""

    def test_strips_longest_project_root(self):
        """Test the most specific project root is removed."""
        classifier = StackFrameClassifier()
        assert classifier.normalize_path("/var/www/html/src/A.php") == "src/A.php"
        assert classifier.normalize_path("/var/www/other/A.php") == "other/A.php"

    def test_resolves_dot_segments(self):
        """Test . and .. are resolved before matching."""
        classifier = StackFrameClassifier()
        assert classifier.normalize_path("/app/src/../vendor/./x.php") == "vendor/x.php"

    def test_backslashes(self):
        """Test Windows separators are unified."""
        classifier = StackFrameClassifier(project_roots=["C:\\project"])
        assert classifier.normalize_path("C:\\project\\src\\A.php") == "src/A.php"

    def test_unknown_root_kept(self):
        """Test paths outside every project root stay absolute."""
        assert StackFrameClassifier().normalize_path("/opt/tool/run.php") == "/opt/tool/run.php"


class TestClassify:
    """Tests for classify and StackFrameClassifier.classify."""

    def test_vendor_frame(self):
        """Test dependency directories are vendor."""
        assert classify(frame("/var/www/html/vendor/symfony/http-kernel/HttpKernel.php")) is False
        assert classify(frame("/app/var/cache/prod/Container.php")) is False
        assert classify(frame("/usr/share/php/PEAR.php")) is False

    def test_application_frame(self):
        """Test project sources are application code."""
        assert classify(frame("/var/www/html/src/Controller/OrderController.php")) is True
        assert classify(frame("app/Http/Kernel.php")) is True

    def test_prefix_matches_whole_segments(self):
        """Test a prefix does not match part of a directory name."""
        assert classify(frame("/app/vendorized/Helper.php")) is True
        assert classify(frame("/app/src/vendor_bridge.php")) is True

    def test_inner_segment_only_outside_project_roots(self):
        """Test a vendor name deeper in a project path is application code."""
        assert classify(frame("/app/src/storage/framework/Cache.php")) is True
        assert classify(frame("/var/www/html/modules/vendor/Shim.php")) is True
        assert classify(frame("src/storage/framework/Cache.php")) is True
        assert classify(frame("/opt/tool/vendor/lib/A.php")) is False
        assert classify(frame("/home/deploy/releases/42/storage/framework/views/a1.php")) is False

    def test_dot_segments_cannot_hide_vendor(self):
        """Test ../ tricks are resolved before classification."""
        assert classify(frame("/app/src/../vendor/acme/lib/A.php")) is False

    def test_frames_without_path_are_vendor(self):
        """Test internal functions and {main} default to vendor."""
        assert classify(StackFrame(file=None, line=None, symbol="array_map()")) is False
        assert classify(frame("")) is False

    def test_stream_wrapper(self):
        """Test phar archives are vendor."""
        assert classify(frame("phar:///usr/local/bin/composer.phar/src/Console/Application.php")) is False

    def test_custom_prefixes(self):
        """Test configured prefixes replace the defaults."""
        classifier = StackFrameClassifier(vendor_prefixes=["lib/external"])
        assert classifier.classify(frame("/app/lib/external/x.php")) is False
        assert classifier.classify(frame("/app/vendor/x.php")) is True

    def test_classify_frames_sets_flag(self):
        """Test classify_frames returns flagged copies."""
        frames = [frame("/app/src/A.php"), frame("/app/vendor/b/B.php")]
        flagged = StackFrameClassifier().classify_frames(frames)

        assert [f.is_application_frame for f in flagged] == [True, False]
        assert frames[0].is_application_frame is False


class TestTopApplicationFrame:
    """Tests for top_application_frame."""

    def test_innermost_application_frame(self):
        """Test the scan starts at the throw site."""
        frames = [
            frame("/app/public/index.php", 5, "{main}"),
            frame("/app/src/Controller/OrderController.php", 21, "show()"),
            frame("/app/src/Repository/OrderRepository.php", 33, "find()"),
            frame("/app/vendor/doctrine/dbal/src/Connection.php", 70, "connect()"),
        ]
        top = StackFrameClassifier().top_application_frame(frames)

        assert top.location == "/app/src/Repository/OrderRepository.php:33"

    def test_vendor_only(self):
        """Test None when every frame is vendor."""
        frames = [frame("/app/vendor/a.php"), StackFrame(file=None, line=None, symbol="x")]
        assert StackFrameClassifier().top_application_frame(frames) is None
