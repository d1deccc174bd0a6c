import io
import unittest
from pathlib import Path

from marcconv.equality import records_equal, records_equal_with_leader
from marcconv.errors import EncodeError, LexError
from marcconv.marc import Record
from marcconv.reader import MarcLineReader
from marcconv.writer import MarcLineWriter

RES = Path(__file__).parent / "res"


def decode_all(data: str) -> list[Record]:
    return MarcLineReader(io.BytesIO(data.encode('utf-8'))).decode_all()


def encode(*records: Record) -> bytes:
    out = io.BytesIO()
    writer = MarcLineWriter(out)
    writer.encode_all(records)
    writer.flush()
    return out.getvalue()


class TestDecodeLineMarc(unittest.TestCase):
    def setUp(self):
        self.f = open(RES / "sample.lmarc", "rb")

    def tearDown(self):
        self.f.close()

    def test_sample_record(self):
        records = MarcLineReader(self.f).decode_all()
        self.assertEqual(len(records), 1)

        record = records[0]
        self.assertEqual(record.leader, "     c   a22        4500")
        self.assertEqual([f.tag for f in record.control_fields], ["001", "008"])
        self.assertEqual([f.tag for f in record.data_fields],
                         ["015", "019", "082", "090", "100", "240", "245", "260",
                          "300", "574", "655", "700", "850"])
        self.assertEqual(record.get_control_field("008").value, "871001                a          0 nob r")

        author = record.get_data_fields("100")[0]
        self.assertEqual((author.indicator1, author.indicator2), (" ", "0"))
        self.assertEqual(author.subfield("a"), "Karlén, Barbro")
        self.assertEqual([s.code for s in author.subfields], ["a", "d", "j", "3"])

        ddc = record.get_data_fields("082")[0]
        self.assertEqual((ddc.indicator1, ddc.indicator2), ("3", " "))

        title = record.get_data_fields("245")[0]
        self.assertTrue(title.subfield("b").startswith("dikt og salmer i norsk gjendiktning   ved"))

    def test_end_of_stream(self):
        reader = MarcLineReader(self.f)
        self.assertIsNotNone(reader.decode())
        self.assertIsNone(reader.decode())
        self.assertIsNone(reader.decode())


class TestDecodeRecords(unittest.TestCase):
    def test_several_records(self):
        records = decode_all("*0011\n*100  $aA\n^\n*0012\n*100  $aB\n^\n")
        self.assertEqual([r.get_control_field("001").value for r in records], ["1", "2"])
        self.assertEqual([r.get_data_fields("100")[0].subfield("a") for r in records], ["A", "B"])
        self.assertIsNone(records[0].leader)

    def test_literal_caret_in_control_field(self):
        records = decode_all("*008871001^^^^a\n*245  $aX\n^\n")
        self.assertEqual(len(records), 1)
        self.assertEqual(records[0].get_control_field("008").value, "871001^^^^a")
        self.assertEqual(records[0].get_data_fields("245")[0].subfield("a"), "X")

    def test_caret_after_line_break_terminates(self):
        records = decode_all("*0011\n^\n*0012\n^\n")
        self.assertEqual(len(records), 2)

    def test_caret_leader(self):
        record = decode_all("*000^^^^^c\n^")[0]
        self.assertEqual(record.leader, "^^^^^c   a22        4500")

    def test_missing_terminator_at_end_of_stream(self):
        with self.assertLogs('marcconv.reader', level='WARNING'):
            records = decode_all("*0011\n*100  $aA\n")
        self.assertEqual(len(records), 1)
        self.assertEqual(records[0].get_data_fields("100")[0].subfield("a"), "A")

    def test_empty_input(self):
        self.assertEqual(decode_all(""), [])
        self.assertEqual(decode_all("\n\n"), [])

    def test_empty_subfield_value(self):
        field = decode_all("*100  $a$bx\n^")[0].data_fields[0]
        self.assertEqual([(s.code, s.value) for s in field.subfields], [("a", ""), ("b", "x")])

    def test_lex_error_is_scoped_to_record(self):
        reader = MarcLineReader(io.BytesIO("*0011\n*1x0  $ab\n^\n*0012\n^\n".encode('utf-8')))
        with self.assertRaises(LexError) as ctx:
            reader.decode()
        self.assertEqual((ctx.exception.line, ctx.exception.column), (2, 2))
        self.assertEqual(ctx.exception.text, "1x0  $ab")

        record = reader.decode()
        self.assertEqual(record.get_control_field("001").value, "2")
        self.assertIsNone(reader.decode())

    def test_value_outside_field(self):
        with self.assertRaises(LexError):
            decode_all("junk\n^")


class TestEncodeLineMarc(unittest.TestCase):
    def test_encode(self):
        record = Record("     c   a22        4500")
        record.add_control_field("001", "0010463")
        record.add_data_field("100", None, "0").add_subfield("a", "Karlén, Barbro").add_subfield("d", "1954-")
        record.add_data_field("082", "3")

        self.assertEqual(encode(record).decode('utf-8'),
                         "*000     c   a22        4500\n"
                         "*0010010463\n"
                         "*100 0$aKarlén, Barbro$d1954-\n"
                         "*0823 \n"
                         "^\n")

    def test_no_leader_line_without_leader(self):
        record = Record()
        record.add_control_field("001", "1")
        self.assertEqual(encode(record), b"*0011\n^\n")

    def test_round_trip(self):
        with open(RES / "sample.lmarc", "rb") as f:
            original = MarcLineReader(f).decode()

        again = MarcLineReader(io.BytesIO(encode(original))).decode()
        self.assertTrue(records_equal(original, again))
        self.assertTrue(records_equal_with_leader(original, again))

    def test_unrepresentable_value(self):
        good = Record()
        good.add_control_field("001", "1")
        bad = Record()
        bad.add_data_field("020").add_subfield("c", "$10")

        out = io.BytesIO()
        writer = MarcLineWriter(out)
        writer.encode(good)
        with self.assertRaises(EncodeError):
            writer.encode(bad)
        writer.flush()
        self.assertEqual(out.getvalue(), b"*0011\n^\n")

    def test_newline_in_control_field(self):
        record = Record()
        record.add_control_field("001", "a\nb")
        with self.assertRaises(EncodeError):
            encode(record)

    def test_delimiter_in_indicator(self):
        for ind1, ind2 in (("$", "0"), ("1", "\n"), ("\r", " ")):
            with self.subTest(ind1=ind1, ind2=ind2):
                record = Record()
                record.add_data_field("245", ind1, ind2).add_subfield("a", "x")
                with self.assertRaises(EncodeError):
                    encode(record)

    def test_line_break_as_subfield_code(self):
        record = Record()
        record.add_data_field("245").add_subfield("\r", "x")
        with self.assertRaises(EncodeError):
            encode(record)

    def test_trailing_carriage_return(self):
        in_control = Record()
        in_control.add_control_field("001", "abc\r")
        in_subfield = Record()
        in_subfield.add_data_field("245").add_subfield("a", "abc\r").add_subfield("b", "d")
        in_leader = Record("00000nam a2200000   450\r")

        for record in (in_control, in_subfield, in_leader):
            with self.subTest(record=record):
                with self.assertRaises(EncodeError):
                    encode(record)

    def test_inner_carriage_return_round_trips(self):
        record = Record()
        record.add_data_field("245").add_subfield("a", "a\rb")
        again = decode_all(encode(record).decode('utf-8'))[0]
        self.assertEqual(again.get_data_fields("245")[0].subfield("a"), "a\rb")

    def test_non_digit_tag(self):
        record = Record()
        record.add_data_field("24a").add_subfield("a", "x")
        with self.assertRaises(EncodeError):
            encode(record)


class TestManipulateRecord(unittest.TestCase):
    def test_build_from_decoded(self):
        input_rec = decode_all("*000     n\n"
                               "*0011830213\n"
                               "*008160205                j          10mul 2\n"
                               "*015  $a0451876$bBIBBI\n"
                               "*020  $a978-82-999778-1-4$bh.$cNkr 300.00\n"
                               "*020  $a978-82-999778-1-5$bh.$cNkr 3000.00\n"
                               "*850  $aDEICHM$sn\n"
                               "^")[0]
        want = decode_all("*008                                 1\n"
                          "*020  $a978-82-999778-1-4\n"
                          "*020  $a978-82-999778-1-5\n"
                          "^")[0]

        got = Record()
        f008 = input_rec.get_control_field("008")
        got.set_control_field("008", f008.value[33:34].rjust(34))
        for f in input_rec.get_data_fields("020"):
            got.add_data_field("020").add_subfield("a", f.subfield("a"))

        self.assertTrue(records_equal(want, got))


if __name__ == '__main__':
    unittest.main()
