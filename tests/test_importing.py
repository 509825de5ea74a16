from gymscore import importing, services
from gymscore.importing import AthleteRow, import_athletes, parse_athletes_csv, validate_rows

HEADER = "first_name,last_name,gender,age,club,level\n"


def _row(**overrides):
    row = {"first_name": "Jane", "last_name": "Smith", "gender": "female", "age": "", "club": "", "level": ""}
    row.update(overrides)
    return row


class TestValidateRows:
    def test_gender_is_case_insensitive(self):
        preview = validate_rows([_row(gender="Male")])
        assert preview.errors == []
        assert preview.valid[0].gender == "male"

    def test_bad_age_rejects_only_that_row(self):
        preview = validate_rows([
            _row(first_name="Ann", age="12 years"),
            _row(first_name="Bea", age="12 yrs"),
            _row(first_name="Cat"),
        ])
        assert [r.first_name for r in preview.valid] == ["Ann", "Cat"]
        assert len(preview.errors) == 1
        assert preview.errors[0].startswith("Row 3: Age must be one of: 7-8 years, ")

    def test_all_problems_reported_with_row_numbers(self):
        preview = validate_rows([_row(first_name="", last_name=" ", gender="x")])
        assert preview.valid == []
        assert preview.errors == [
            "Row 2: First name is required",
            "Row 2: Last name is required",
            "Row 2: Gender must be 'male' or 'female'",
        ]

    def test_blank_optionals_become_none(self):
        row = validate_rows([_row(club="  ")]).valid[0]
        assert row.club is None
        assert row.age_group is None


class TestParseCsv:
    def test_parses_and_skips_blank_lines(self):
        text = "\ufeff" + HEADER + "John,Doe,male,14+ years,City,Level 10\n,,,,,\nJane,Smith,FEMALE,,,\n"
        preview = parse_athletes_csv(text)
        assert preview.errors == []
        assert [(r.first_name, r.gender, r.age_group) for r in preview.valid] == [
            ("John", "male", "14+ years"),
            ("Jane", "female", None),
        ]

    def test_missing_columns(self):
        preview = parse_athletes_csv("first_name,gender\nJane,female\n")
        assert preview.valid == []
        assert preview.errors == ["Missing required column(s): last_name"]

    def test_empty_file(self):
        assert parse_athletes_csv("").errors == ["The CSV file is empty"]

    def test_template_is_importable(self):
        preview = parse_athletes_csv(importing.template_csv())
        assert preview.errors == []
        assert len(preview.valid) == len(importing.TEMPLATE_ROWS)


class TestImportAthletes:
    def test_creates_each_valid_row(self, session):
        rows = [
            AthleteRow("John", "Doe", "male", "14+ years", "City", "Level 10"),
            AthleteRow("Jane", "Smith", "female"),
        ]
        result = import_athletes(session, rows)
        assert (result.success, result.failed) == (2, 0)
        names = [a.full_name for a in services.list_athletes(session)]
        assert names == ["John Doe", "Jane Smith"]

    def test_failures_counted_without_rollback(self, session):
        rows = [
            AthleteRow("John", "Doe", "male"),
            AthleteRow("Bad", "Age", "female", age_group="12 yrs"),
        ]
        result = import_athletes(session, rows)
        assert (result.success, result.failed) == (1, 1)
        assert len(services.list_athletes(session)) == 1
