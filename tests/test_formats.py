import io
import tempfile
import unittest
import zipfile
from pathlib import Path

from mapping2tiny.errors import MalformedStreamError, UnsupportedFormatError
from mapping2tiny.formats import create_writer, detect_format, get_format, read_mapping
from mapping2tiny.formats import enigma, proguard, tiny1, tiny2
from mapping2tiny.formats.registry import read_tiny_zip
from mapping2tiny.tree import TreeBuilder, build_tree
from mapping2tiny.visitor import ClassFilterVisitor, ValidatingVisitor

TINY2 = (
    "tiny\t2\t0\tobf\tnamed\n"
    "\tauthor\tsomeone\n"
    "c\ta\tcom/example/Foo\n"
    "\tc\tA class\n"
    "\tf\tLa;\tb\tself\n"
    "\tm\t(IJ)V\tm\tdoWork\n"
    "\t\tc\tDoes the work\n"
    "\t\tp\t1\t\tcount\n"
    "\t\tv\t4\t0\t0\t\ttmp\n"
    "c\tb\tcom/example/Bar\n"
)

TINY1 = (
    "v1\tobf\tnamed\n"
    "CLASS\ta\tcom/example/Foo\n"
    "FIELD\ta\tLa;\tb\tself\n"
    "METHOD\ta\t()V\tm\tdoWork\n"
)

PROGUARD = (
    "# compiler: R8\n"
    "com.example.Foo -> a:\n"
    "    int count -> a\n"
    "    com.example.Foo self -> b\n"
    "    1:3:void doWork(int,java.lang.String) -> c\n"
    "    4:5:void doWork(int,java.lang.String) -> c\n"
    "    7:8:void com.other.Bar.inlined():12:13 -> c\n"
    "com.example.Foo$Inner -> a$a:\n"
)

ENIGMA_FOO = (
    "CLASS a com/example/Foo\n"
    "\tFIELD b self La;\n"
    "\tFIELD c I\n"
    "\tMETHOD m doWork (I)V ACC:PUBLIC\n"
    "\t\tARG 1 count\n"
    "\tCLASS a Inner\n"
    "\tCOMMENT The foo\n"
)

ENIGMA_BAR = "CLASS b com/example/Bar\n"


def parse_tiny2(text):
    return build_tree(lambda v: tiny2.read(io.StringIO(text), v))


def write_tiny2(tree):
    out = io.StringIO()
    tree.accept(tiny2.Tiny2Writer(out))
    return out.getvalue()


class TestTiny2(unittest.TestCase):
    def test_read(self):
        tree = parse_tiny2(TINY2)
        self.assertEqual(tree.namespaces, ("obf", "named"))
        self.assertEqual(tree.metadata, {"author": "someone"})
        cls = tree.get_class("a")
        self.assertEqual(cls.comment, "A class")
        method = cls.get_method("m", "(IJ)V")
        self.assertEqual(method.comment, "Does the work")
        self.assertEqual(method.get_parameter(lv_index=1).get_name("named"), "count")
        self.assertIsNone(method.get_parameter(lv_index=1).src_name)
        self.assertEqual(method.get_local_variable(4, 0, 0).get_name("named"), "tmp")

    def test_tree_round_trip_is_byte_exact(self):
        self.assertEqual(write_tiny2(parse_tiny2(TINY2)), TINY2)

    def test_streaming_copy(self):
        out = io.StringIO()
        tiny2.read(io.StringIO(TINY2), ValidatingVisitor(tiny2.Tiny2Writer(out)))
        self.assertEqual(out.getvalue(), TINY2)

    def test_skipped_class_children_are_not_read(self):
        builder = TreeBuilder()
        tiny2.read(io.StringIO(TINY2), ValidatingVisitor(ClassFilterVisitor(builder, lambda n: n != "a")))
        tree = builder.finish()
        self.assertEqual([c.src_name for c in tree.classes], ["b"])

    def test_argument_index_is_written_as_slot(self):
        def source(v):
            v.visit_namespaces(["obf", "named"])
            v.visit_class("a")
            v.visit_method("m", "(JI)V")
            v.visit_parameter(1, "x")
            v.visit_dst_name(1, "flag")
            v.visit_end()
            v.visit_end()
            v.visit_end()
            v.visit_end()
        self.assertIn("\t\tp\t3\tx\tflag\n", write_tiny2(build_tree(source)))

    def test_escaped_names(self):
        self.assertEqual(tiny2.escape("a\tb\\c\n"), "a\\tb\\\\c\\n")
        self.assertEqual(tiny2.unescape("a\\tb\\\\c\\n"), "a\tb\\c\n")
        text = "tiny\t2\t0\tobf\tnamed\n\tescaped-names\nc\ta\tFoo\\tBar\n"
        self.assertEqual(parse_tiny2(text).get_class("a").get_name("named"), "Foo\tBar")

    def test_malformed(self):
        for text in ("", "tiny\t1\t0\ta\tb\n", "tiny\t2\t0\tobf\tnamed\n\t\tm\t()V\tm\n",
                     "tiny\t2\t0\tobf\tnamed\nc\ta\tb\tc\n", "tiny\t2\t0\tobf\tnamed\nx\ta\n"):
            with self.assertRaises(MalformedStreamError, msg=repr(text)):
                parse_tiny2(text)


class TestTiny1(unittest.TestCase):
    def test_round_trip(self):
        tree = build_tree(lambda v: tiny1.read(io.StringIO(TINY1), v))
        out = io.StringIO()
        tree.accept(tiny1.Tiny1Writer(out))
        self.assertEqual(out.getvalue(), TINY1)

    def test_rows_grouped_by_owner(self):
        text = "v1\tobf\tnamed\nFIELD\ta\tI\tf\tcount\nCLASS\tb\tBar\nCLASS\ta\tFoo\n"
        tree = build_tree(lambda v: tiny1.read(io.StringIO(text), v))
        self.assertEqual([c.src_name for c in tree.classes], ["a", "b"])
        self.assertEqual(tree.get_class("a").get_field("f", "I").get_name("named"), "count")
        self.assertEqual(tree.get_class("a").get_name("named"), "Foo")

    def test_v1_to_v2(self):
        tree = build_tree(lambda v: tiny1.read(io.StringIO(TINY1), v))
        self.assertEqual(write_tiny2(tree).splitlines(), [
            "tiny\t2\t0\tobf\tnamed",
            "c\ta\tcom/example/Foo",
            "\tf\tLa;\tb\tself",
            "\tm\t()V\tm\tdoWork",
        ])

    def test_v1_writer_drops_parameters(self):
        out = io.StringIO()
        parse_tiny2(TINY2).accept(tiny1.Tiny1Writer(out))
        self.assertEqual(out.getvalue().splitlines(), [
            "v1\tobf\tnamed",
            "CLASS\ta\tcom/example/Foo",
            "FIELD\ta\tLa;\tb\tself",
            "METHOD\ta\t(IJ)V\tm\tdoWork",
            "CLASS\tb\tcom/example/Bar",
        ])


class TestProguard(unittest.TestCase):
    def test_read(self):
        tree = build_tree(lambda v: proguard.read(io.StringIO(PROGUARD), v, "named", "obf"))
        self.assertEqual(tree.namespaces, ("named", "obf"))
        cls = tree.get_class("com/example/Foo")
        self.assertEqual(cls.get_name("obf"), "a")
        self.assertEqual(cls.get_field("count", "I").get_name("obf"), "a")
        self.assertEqual(cls.get_field("self", "Lcom/example/Foo;").get_name("obf"), "b")
        self.assertEqual(len(cls.methods), 1)
        self.assertEqual(cls.get_method("doWork", "(ILjava/lang/String;)V").get_name("obf"), "c")
        self.assertEqual(tree.get_class("com/example/Foo$Inner").get_name("obf"), "a$a")

    def test_detect(self):
        self.assertTrue(proguard.detect(PROGUARD))
        self.assertFalse(proguard.detect(TINY1))

    def test_member_before_class(self):
        with self.assertRaises(MalformedStreamError):
            build_tree(lambda v: proguard.read(io.StringIO("    int a -> b\n"), v))


class TestEnigma(unittest.TestCase):
    def setUp(self):
        self._tmp = tempfile.TemporaryDirectory()
        self.tmp = Path(self._tmp.name)

    def tearDown(self):
        self._tmp.cleanup()

    def check_tree(self, tree):
        self.assertEqual(tree.namespaces, ("source", "target"))
        foo = tree.get_class("a")
        self.assertEqual(foo.get_name("target"), "com/example/Foo")
        self.assertEqual(foo.comment, "The foo")
        self.assertEqual(foo.get_field("b", "La;").get_name("target"), "self")
        self.assertIsNone(foo.get_field("c", "I").get_name("target"))
        method = foo.get_method("m", "(I)V")
        self.assertEqual(method.get_name("target"), "doWork")
        self.assertEqual(method.get_parameter(lv_index=1).get_name("target"), "count")
        self.assertEqual(tree.get_class("a$a").get_name("target"), "com/example/Foo$Inner")

    def test_file(self):
        path = self.tmp / "Foo.mapping"
        path.write_text(ENIGMA_FOO, encoding="utf-8")
        self.check_tree(build_tree(lambda v: enigma.read(path, v)))

    def test_directory(self):
        (self.tmp / "com" / "example").mkdir(parents=True)
        (self.tmp / "com" / "example" / "Foo.mapping").write_text(ENIGMA_FOO, encoding="utf-8")
        (self.tmp / "Bar.mapping").write_text(ENIGMA_BAR, encoding="utf-8")
        tree = build_tree(lambda v: enigma.read(self.tmp, v))
        self.check_tree(tree)
        self.assertEqual(tree.get_class("b").get_name("target"), "com/example/Bar")

    def test_zip(self):
        path = self.tmp / "mappings.zip"
        with zipfile.ZipFile(path, "w") as zf:
            zf.writestr("com/example/Foo.mapping", ENIGMA_FOO)
            zf.writestr("README.txt", "not a mapping")
        self.check_tree(build_tree(lambda v: enigma.read_zip(path, v)))

    def test_invalid_rows(self):
        for text in ("FIELD a b I\n", "CLASS a b\n\t\tFIELD a b I\n", "CLASS a b\n\tARG 1 x\n", "BOGUS\n"):
            with self.assertRaises(MalformedStreamError, msg=repr(text)):
                enigma.parse(io.StringIO(text))

    def test_comment_cannot_have_children(self):
        text = "CLASS a b\n\tCOMMENT x\n\t\tCOMMENT y\n"
        with self.assertRaises(MalformedStreamError):
            enigma.parse(io.StringIO(text))

    def test_corrupt_zip(self):
        path = self.tmp / "broken.zip"
        path.write_bytes(b"PK\x03\x04garbage")
        with self.assertRaises(MalformedStreamError):
            build_tree(lambda v: enigma.read_zip(path, v))


class TestRegistry(unittest.TestCase):
    def setUp(self):
        self._tmp = tempfile.TemporaryDirectory()
        self.tmp = Path(self._tmp.name)

    def tearDown(self):
        self._tmp.cleanup()

    def write(self, name, text):
        path = self.tmp / name
        path.write_text(text, encoding="utf-8")
        return path

    def test_detect_text_formats(self):
        self.assertEqual(detect_format(self.write("a.tiny", TINY2)).id, "tiny2")
        self.assertEqual(detect_format(self.write("b.tiny", TINY1)).id, "tiny1")
        self.assertEqual(detect_format(self.write("c.txt", PROGUARD)).id, "proguard")
        self.assertEqual(detect_format(self.write("d.mapping", ENIGMA_FOO)).id, "enigma")
        self.assertEqual(detect_format(self.tmp).id, "enigma")
        with self.assertRaises(UnsupportedFormatError):
            detect_format(self.write("e.txt", "hello world\n"))

    def test_zip_formats(self):
        jar = self.tmp / "yarn.jar"
        with zipfile.ZipFile(jar, "w") as zf:
            zf.writestr("mappings/mappings.tiny", TINY1)
        self.assertEqual(detect_format(jar).id, "tiny_zip")
        tree = build_tree(lambda v: read_mapping(jar, v))
        self.assertEqual(tree.get_class("a").get_name("named"), "com/example/Foo")

        jar2 = self.tmp / "yarn2.jar"
        with zipfile.ZipFile(jar2, "w") as zf:
            zf.writestr("mappings/mappings.tiny", TINY2)
        tree = build_tree(lambda v: read_mapping(jar2, v, "tiny_zip"))
        self.assertEqual(tree.metadata, {"author": "someone"})

        enigma_zip = self.tmp / "enigma.zip"
        with zipfile.ZipFile(enigma_zip, "w") as zf:
            zf.writestr("Foo.mapping", ENIGMA_FOO)
        self.assertEqual(detect_format(enigma_zip).id, "enigma_zip")

    def test_corrupt_zip(self):
        path = self.tmp / "broken.jar"
        path.write_bytes(b"PK\x03\x04garbage")
        with self.assertRaises(MalformedStreamError):
            detect_format(path)
        with self.assertRaises(MalformedStreamError):
            read_tiny_zip(path, TreeBuilder())

    def test_unknown_format_falls_back_to_detection(self):
        with self.assertLogs("mapping2tiny.formats", level="WARNING"):
            self.assertIsNone(get_format("bogus"))
        path = self.write("a.tiny", TINY2)
        spec = read_mapping(path, TreeBuilder(), "bogus")
        self.assertEqual(spec.id, "tiny2")

    def test_directory_rule(self):
        with self.assertRaises(UnsupportedFormatError):
            read_mapping(self.tmp, TreeBuilder(), "tiny2")

    def test_named_pair_for_single_pair_formats(self):
        path = self.write("p.txt", PROGUARD)
        tree = build_tree(lambda v: read_mapping(path, v, "proguard", "named", "official"))
        self.assertEqual(tree.namespaces, ("named", "official"))

    def test_writers(self):
        self.assertIsInstance(create_writer("tiny2", io.StringIO()), tiny2.Tiny2Writer)
        self.assertIsInstance(create_writer("tiny1", io.StringIO()), tiny1.Tiny1Writer)
        with self.assertRaises(UnsupportedFormatError):
            create_writer("proguard", io.StringIO())


if __name__ == "__main__":
    unittest.main()
