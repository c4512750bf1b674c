import unittest

from tavernshell.dice import (
    Die,
    Expression,
    Operation,
    evaluate,
    format_result,
    parse,
    roll,
    secure_draw,
)
from tavernshell.errors import DiceRollError, DiceSyntaxError


def fixed(*values: int):
    it = iter(values)
    return lambda _sides: next(it)


class TestParse(unittest.TestCase):
    def test_basic(self) -> None:
        self.assertEqual(parse("2d6"), Expression(count=2, sides=6))
        self.assertEqual(parse("d20"), Expression(count=1, sides=20))
        self.assertEqual(parse("100d6"), Expression(count=100, sides=6))
        self.assertEqual(parse("1000d2").count, 1000)

    def test_modifiers(self) -> None:
        self.assertEqual(parse("2d6+3").modifier, 3)
        self.assertEqual(parse("1d20-2").modifier, -2)
        self.assertEqual(parse("3d10-10").modifier, -10)
        self.assertEqual(parse("2d6+0").modifier, 0)

    def test_advantage_with_modifier(self) -> None:
        self.assertEqual(
            parse("d20!+5"),
            Expression(count=1, sides=20, modifier=5, advantage=True),
        )
        self.assertEqual(
            parse("4d10!-2"),
            Expression(count=4, sides=10, modifier=-2, advantage=True),
        )

    def test_operations(self) -> None:
        self.assertEqual(parse("4d6kh3").operation, Operation("kh", 3))
        self.assertEqual(parse("4d6kl2").operation, Operation("kl", 2))
        self.assertEqual(parse("5d10dh1").operation, Operation("dh", 1))
        self.assertEqual(parse("4d6dl1").operation, Operation("dl", 1))

    def test_combined_clauses_any_order(self) -> None:
        a = parse("4d10!kh3+2")
        b = parse("4d10+2kh3!")
        self.assertEqual(a, b)
        self.assertTrue(a.advantage)
        self.assertEqual(a.operation, Operation("kh", 3))
        self.assertEqual(a.modifier, 2)

    def test_last_clause_wins(self) -> None:
        e = parse("4d6kh3dl1+2-5")
        self.assertEqual(e.operation, Operation("dl", 1))
        self.assertEqual(e.modifier, -5)

    def test_whitespace_and_case(self) -> None:
        self.assertEqual(parse("2d6 + 3"), Expression(count=2, sides=6, modifier=3))
        self.assertEqual(parse("2 d 6"), Expression(count=2, sides=6))
        self.assertEqual(parse(" 4D6KH3 "), parse("4d6kh3"))
        self.assertTrue(parse("d20 !").advantage)

    def test_errors(self) -> None:
        bad = [
            "",
            "   ",
            "2d",
            "d",
            "2x6",
            "0d6",
            "2d1",
            "2d0",
            "1001d6",
            "2d6kh",
            "2d6kh0",
            "2d6+",
            "2d6-",
            "2d6xyz",
            "2d6k",
            "2d6kx1",
            "2d6!?",
        ]
        for text in bad:
            with self.subTest(text=text):
                with self.assertRaises(DiceSyntaxError):
                    parse(text)

    def test_error_messages_are_specific(self) -> None:
        with self.assertRaises(DiceSyntaxError) as cm:
            parse("2d6+3x")
        self.assertIn("unexpected character 'x' at position 5", str(cm.exception))
        self.assertEqual(cm.exception.position, 5)

        with self.assertRaises(DiceSyntaxError) as cm:
            parse("2x6")
        self.assertIn("expected 'd' at position 1", str(cm.exception))

        with self.assertRaises(DiceSyntaxError) as cm:
            parse("1001d6")
        self.assertIn("max 1000", str(cm.exception))

        with self.assertRaises(DiceSyntaxError) as cm:
            parse("2d1")
        self.assertIn("at least 2 sides", str(cm.exception))

    def test_overlong_numbers_rejected(self) -> None:
        huge = "9" * 5000
        for text in [huge + "d6", "1d" + huge, "4d6kh" + huge, "1d6+" + huge, "1d6-" + huge]:
            with self.subTest(position=text.index("9" * 19)):
                with self.assertRaises(DiceSyntaxError) as cm:
                    parse(text)
                self.assertIn("number too long", str(cm.exception))

        self.assertEqual(parse("1d6+" + "9" * 18).modifier, 10**18 - 1)

    def test_syntax_error_is_value_error(self) -> None:
        with self.assertRaises(ValueError):
            parse("nope")

    def test_canonical_notation_reparses(self) -> None:
        for text in ["2d6", "d20!+5", "4d6kh3-1", "8d8!dl2", "3d4kl1+0", "10d10 dh 3 - 4"]:
            with self.subTest(text=text):
                e = parse(text)
                self.assertEqual(parse(e.notation()), e)
        self.assertEqual(parse("d20!+5").notation(), "1d20!+5")


class TestEvaluate(unittest.TestCase):
    def test_plain_roll_keeps_everything(self) -> None:
        r = evaluate(parse("3d6+2"), draw=fixed(1, 4, 6))
        self.assertEqual([d.value for d in r.dice], [1, 4, 6])
        self.assertTrue(all(d.kept for d in r.dice))
        self.assertEqual(r.kept_total, 11)
        self.assertEqual(r.total, 13)

    def test_keep_highest(self) -> None:
        r = evaluate(parse("4d6kh3"), draw=fixed(5, 2, 6, 1))
        self.assertEqual([d.kept for d in r.dice], [True, True, True, False])
        self.assertEqual(r.kept_total, 13)

    def test_keep_lowest(self) -> None:
        r = evaluate(parse("4d6kl2"), draw=fixed(5, 2, 6, 1))
        self.assertEqual([d.kept for d in r.dice], [False, True, False, True])
        self.assertEqual(r.kept_total, 3)

    def test_drop_highest_and_lowest(self) -> None:
        r = evaluate(parse("5d10dh2"), draw=fixed(3, 9, 9, 1, 4))
        self.assertEqual([d.kept for d in r.dice], [True, False, False, True, True])

        r = evaluate(parse("4d6dl1"), draw=fixed(3, 3, 5, 3))
        # Ties go to the earliest roll.
        self.assertEqual([d.kept for d in r.dice], [False, True, True, True])

    def test_ties_break_by_roll_order(self) -> None:
        r = evaluate(parse("4d6kh2"), draw=fixed(4, 4, 4, 4))
        self.assertEqual([d.kept for d in r.dice], [False, False, True, True])

        r = evaluate(parse("4d6kl2"), draw=fixed(4, 4, 4, 4))
        self.assertEqual([d.kept for d in r.dice], [True, True, False, False])

    def test_unsatisfiable_operations_are_noops(self) -> None:
        r = evaluate(parse("2d6kh5"), draw=fixed(2, 3))
        self.assertTrue(all(d.kept for d in r.dice))
        r = evaluate(parse("2d6kl2"), draw=fixed(2, 3))
        self.assertTrue(all(d.kept for d in r.dice))
        r = evaluate(parse("2d6dl3"), draw=fixed(2, 3))
        self.assertTrue(all(d.kept for d in r.dice))

    def test_drop_all(self) -> None:
        r = evaluate(parse("2d6dh2+1"), draw=fixed(2, 3))
        self.assertFalse(any(d.kept for d in r.dice))
        self.assertEqual(r.kept_total, 0)
        self.assertEqual(r.total, 1)

    def test_advantage(self) -> None:
        r = evaluate(parse("d20!+5"), draw=fixed(12, 17))
        self.assertEqual(len(r.dice), 2)
        self.assertEqual([d.kept for d in r.dice], [False, True])
        self.assertEqual(r.kept_total, 17)
        self.assertEqual(r.total, 22)

    def test_advantage_pairs_follow_roll_order(self) -> None:
        r = evaluate(parse("3d6!"), draw=fixed(2, 5, 6, 1, 3, 3))
        self.assertEqual([d.kept for d in r.dice], [False, True, True, False, True, False])
        self.assertEqual(r.kept_total, 14)

    def test_advantage_then_operation(self) -> None:
        # Pairs keep 5, 6, 3; kh2 then drops the 3.
        r = evaluate(parse("3d6!kh2"), draw=fixed(2, 5, 6, 1, 3, 3))
        self.assertEqual([d.value for d in r.kept], [5, 6])
        self.assertEqual(len(r.dropped), 4)
        self.assertEqual(r.kept_total, 11)

    def test_keep_highest_matches_drop_lowest(self) -> None:
        rolls = (4, 1, 6, 6, 2, 4, 3)
        kh = evaluate(parse("7d6kh4"), draw=fixed(*rolls))
        dl = evaluate(parse("7d6dl3"), draw=fixed(*rolls))
        self.assertEqual([d.kept for d in kh.dice], [d.kept for d in dl.dice])

    def test_secure_draw_in_range(self) -> None:
        for sides in (2, 6, 20, 100, 7):
            for _ in range(200):
                self.assertTrue(1 <= secure_draw(sides) <= sides)

    def test_default_source_properties(self) -> None:
        for _ in range(20):
            r = roll("100d6")
            self.assertTrue(100 <= r.kept_total <= 600)
            self.assertEqual(r.total, r.kept_total)
            self.assertTrue(all(1 <= d.value <= 6 for d in r.dice))

        for _ in range(50):
            r = roll("4d8!-3")
            self.assertEqual(len(r.dice), 8)
            for a, b in zip(r.dice[0::2], r.dice[1::2]):
                self.assertNotEqual(a.kept, b.kept)
                winner, loser = (a, b) if a.kept else (b, a)
                self.assertGreaterEqual(winner.value, loser.value)
            self.assertEqual(r.total, r.kept_total - 3)

    def test_random_source_failure(self) -> None:
        def broken(_sides: int) -> int:
            raise OSError("entropy pool unavailable")

        with self.assertRaises(DiceRollError) as cm:
            evaluate(parse("2d6"), draw=broken)
        self.assertIsInstance(cm.exception.__cause__, OSError)

    def test_out_of_range_draw_rejected(self) -> None:
        with self.assertRaises(DiceRollError):
            evaluate(parse("1d6"), draw=fixed(7))

    def test_result_is_frozen(self) -> None:
        r = evaluate(parse("1d6"), draw=fixed(3))
        self.assertEqual(r.dice, (Die(value=3, sides=6, kept=True),))
        with self.assertRaises(AttributeError):
            r.dice[0].kept = False  # type: ignore[misc]


class TestFormat(unittest.TestCase):
    def test_plain(self) -> None:
        r = evaluate(parse("2d6+3"), draw=fixed(3, 4))
        self.assertEqual(format_result(r), "2d6+3: [3, 4] +3 = 10")

    def test_negative_modifier(self) -> None:
        r = evaluate(parse("d20-2"), draw=fixed(11))
        self.assertEqual(format_result(r), "1d20-2: [11] -2 = 9")

    def test_dropped_dice_are_marked(self) -> None:
        r = evaluate(parse("4d6kh3"), draw=fixed(5, 2, 6, 1))
        self.assertEqual(format_result(r), "4d6kh3: [5, 2, 6, ‹1›] = 13 (kept highest 3)")

    def test_advantage_reason(self) -> None:
        r = evaluate(parse("d20!+5"), draw=fixed(12, 17))
        self.assertEqual(format_result(r), "1d20!+5: [‹12›, 17] +5 = 22 (advantage)")

    def test_custom_marks(self) -> None:
        r = evaluate(parse("2d6dl1"), draw=fixed(1, 6))
        self.assertEqual(format_result(r, marks=("(", ")")), "2d6dl1: [(1), 6] = 6 (dropped lowest 1)")

    def test_to_dict(self) -> None:
        r = evaluate(parse("4d6kh3+1"), draw=fixed(5, 2, 6, 1))
        d = r.to_dict()
        self.assertEqual(d["expr"], "4d6kh3+1")
        self.assertEqual(d["operation"], ["kh", 3])
        self.assertEqual(d["rolls"], [5, 2, 6, 1])
        self.assertEqual(d["kept"], [True, True, True, False])
        self.assertEqual(d["total"], 14)


if __name__ == "__main__":
    unittest.main()
