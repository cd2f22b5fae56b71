import threading
import tempfile
import unittest
from pathlib import Path

from mapping2tiny.config.env import ConverterConfig
from mapping2tiny.conversion import ConversionOptions, convert, load_tree, write_tree
from mapping2tiny.conversion.options import validate_options
from mapping2tiny.conversion.output import atomic_output
from mapping2tiny.errors import (
    ConflictingDefinitionError,
    ConversionCancelled,
    MalformedStreamError,
    MergeConflictError,
)
from mapping2tiny.tree import ConflictPolicy

TINY1_NAMED = (
    "v1\tobf\tnamed\n"
    "CLASS\tb\tcom/example/Bar\n"
    "CLASS\ta\tcom/example/Foo\n"
    "METHOD\ta\t(Lb;)V\tm\tdoWork\n"
)

TINY2_SRG = (
    "tiny\t2\t0\tobf\tsrg\n"
    "c\ta\tC_1\n"
    "\tm\t(Lb;)V\tm\tm_1\n"
)

PROGUARD_MEMBER_FIRST = (
    "    int count -> a\n"
    "com.example.Foo -> a:\n"
)


class TestConvert(unittest.TestCase):
    def setUp(self):
        self._tmp = tempfile.TemporaryDirectory()
        self.tmp = Path(self._tmp.name)

    def tearDown(self):
        self._tmp.cleanup()

    def write(self, name, text):
        path = self.tmp / name
        path.write_text(text, encoding="utf-8")
        return path

    def leftovers(self):
        return sorted(p.name for p in self.tmp.iterdir() if p.name.endswith(".tmp"))

    def test_single_input_is_streamed(self):
        src = self.write("in.tiny", TINY1_NAMED)
        out = self.tmp / "out.tiny"
        result = convert([src], out)
        self.assertTrue(result.streamed)
        self.assertEqual(result.classes, 2)
        self.assertEqual(result.namespaces, ["obf", "named"])
        self.assertEqual(out.read_text(encoding="utf-8").splitlines(), [
            "tiny\t2\t0\tobf\tnamed",
            "c\tb\tcom/example/Bar",
            "c\ta\tcom/example/Foo",
            "\tm\t(Lb;)V\tm\tdoWork",
        ])

    def test_projection_goes_through_tree(self):
        src = self.write("in.tiny", TINY1_NAMED)
        out = self.tmp / "out.tiny"
        result = convert([src], out, ConversionOptions(namespaces=("named", "obf"), sort=True))
        self.assertFalse(result.streamed)
        self.assertEqual(out.read_text(encoding="utf-8").splitlines(), [
            "tiny\t2\t0\tnamed\tobf",
            "c\tcom/example/Bar\tb",
            "c\tcom/example/Foo\ta",
            "\tm\t(Lcom/example/Bar;)V\tdoWork\tm",
        ])

    def test_multiple_inputs_are_merged(self):
        inputs = [self.write("named.tiny", TINY1_NAMED), self.write("srg.tiny", TINY2_SRG)]
        out = self.tmp / "out.tiny"
        result = convert(inputs, out, ConversionOptions(workers=2))
        self.assertEqual(result.namespaces, ["obf", "named", "srg"])
        lines = out.read_text(encoding="utf-8").splitlines()
        self.assertIn("c\ta\tcom/example/Foo\tC_1", lines)
        self.assertIn("\tm\t(Lb;)V\tm\tdoWork\tm_1", lines)

    def test_merge_conflict(self):
        other = TINY2_SRG.replace("obf\tsrg", "obf\tnamed")
        inputs = [self.write("a.tiny", TINY1_NAMED), self.write("b.tiny", other)]
        with self.assertRaises(MergeConflictError):
            convert(inputs, self.tmp / "out.tiny")
        self.assertFalse((self.tmp / "out.tiny").exists())

    def test_malformed_input_leaves_no_output(self):
        src = self.write("in.txt", PROGUARD_MEMBER_FIRST)
        out = self.tmp / "out.tiny"
        with self.assertRaises(MalformedStreamError):
            convert([src], out, ConversionOptions(input_format="proguard"))
        self.assertFalse(out.exists())
        self.assertEqual(self.leftovers(), [])

    def test_failure_keeps_previous_output(self):
        src = self.write("in.txt", PROGUARD_MEMBER_FIRST)
        out = self.write("out.tiny", "previous\n")
        with self.assertRaises(MalformedStreamError):
            convert([src], out, ConversionOptions(input_format="proguard"))
        self.assertEqual(out.read_text(encoding="utf-8"), "previous\n")

    def test_cancelled_conversion_leaves_no_output(self):
        src = self.write("in.tiny", TINY1_NAMED)
        out = self.tmp / "out.tiny"
        cancel = threading.Event()
        cancel.set()
        for options in (ConversionOptions(), ConversionOptions(sort=True)):
            with self.assertRaises(ConversionCancelled):
                convert([src], out, options, cancel)
            self.assertFalse(out.exists())
        self.assertEqual(self.leftovers(), [])

    def test_repeated_class_streams_like_tree(self):
        src = self.write("in.tiny", "tiny\t2\t0\tobf\tnamed\nc\ta\tFoo\nc\ta\tBar\n")
        out = self.tmp / "out.tiny"
        for options in (ConversionOptions(), ConversionOptions(sort=True)):
            with self.assertRaises(ConflictingDefinitionError):
                convert([src], out, options)
            self.assertFalse(out.exists())
        self.assertEqual(self.leftovers(), [])

        outputs = []
        for options in (ConversionOptions(policy=ConflictPolicy.OVERWRITE),
                        ConversionOptions(policy=ConflictPolicy.OVERWRITE, sort=True)):
            result = convert([src], out, options)
            self.assertFalse(result.streamed)
            outputs.append(out.read_text(encoding="utf-8"))
        self.assertEqual(outputs[0], outputs[1])
        self.assertEqual(outputs[0], "tiny\t2\t0\tobf\tnamed\nc\ta\tBar\n")

    def test_identical_repeats_are_collapsed(self):
        src = self.write("in.tiny", "tiny\t2\t0\tobf\tnamed\nc\ta\tFoo\nc\ta\tFoo\n")
        out = self.tmp / "out.tiny"
        result = convert([src], out)
        self.assertEqual(result.classes, 1)
        self.assertEqual(out.read_text(encoding="utf-8"), "tiny\t2\t0\tobf\tnamed\nc\ta\tFoo\n")

    def test_corrupt_zip_input(self):
        src = self.tmp / "in.jar"
        src.write_bytes(b"PK\x03\x04garbage")
        out = self.tmp / "out.tiny"
        with self.assertRaises(MalformedStreamError):
            convert([src], out)
        self.assertFalse(out.exists())

    def test_tiny1_output(self):
        src = self.write("in.tiny", TINY2_SRG)
        out = self.tmp / "out.tiny"
        convert([src], out, ConversionOptions(output_format="tiny1"))
        self.assertEqual(out.read_text(encoding="utf-8"),
                         "v1\tobf\tsrg\nCLASS\ta\tC_1\nMETHOD\ta\t(Lb;)V\tm\tm_1\n")

    def test_load_and_write_tree(self):
        src = self.write("in.tiny", TINY2_SRG)
        tree = load_tree([src])
        self.assertTrue(tree.frozen)
        self.assertEqual(write_tree(tree, self.tmp / "copy.tiny"), 1)
        self.assertEqual((self.tmp / "copy.tiny").read_text(encoding="utf-8"), TINY2_SRG)

    def test_no_inputs(self):
        with self.assertRaises(ValueError):
            convert([], self.tmp / "out.tiny")


class TestOptions(unittest.TestCase):
    def test_validation(self):
        for bad in (ConversionOptions(workers=0), ConversionOptions(namespaces=()),
                    ConversionOptions(source_name="x", target_name="x")):
            with self.assertRaises(ValueError):
                validate_options(bad)

    def test_from_config(self):
        cfg = ConverterConfig(source_namespace="official", target_namespace="named", workers=3)
        o = ConversionOptions.from_config(cfg, policy=ConflictPolicy.MERGE, primary=None)
        self.assertEqual((o.source_name, o.target_name, o.workers), ("official", "named", 3))
        self.assertEqual(o.policy, ConflictPolicy.MERGE)
        self.assertIsNone(o.primary)
        self.assertFalse(o.needs_tree)


class TestAtomicOutput(unittest.TestCase):
    def test_replaces_only_on_success(self):
        with tempfile.TemporaryDirectory() as d:
            path = Path(d) / "nested" / "out.txt"
            with atomic_output(path) as fh:
                fh.write("one\n")
            self.assertEqual(path.read_text(encoding="utf-8"), "one\n")
            with self.assertRaises(RuntimeError):
                with atomic_output(path) as fh:
                    fh.write("two\n")
                    raise RuntimeError("boom")
            self.assertEqual(path.read_text(encoding="utf-8"), "one\n")
            self.assertEqual(sorted(p.name for p in path.parent.iterdir()), ["out.txt"])


if __name__ == "__main__":
    unittest.main()
