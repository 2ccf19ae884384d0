from eoffice.models import Profile
from eoffice.models.converters import letter_type_from_record, profile_from_record


class TestProfileFromRecord:
    def test_snake_case(self):
        p = profile_from_record("u1", {
            "gelar_depan": "Dr.", "full_name": "Ahmad Fauzi", "gelar_belakang": "M.Pd.",
            "jabatan_struktural": "Kepala Sekolah",
        })
        assert p.display_name == "Dr. Ahmad Fauzi M.Pd."
        assert p.job_title == "Kepala Sekolah"

    def test_upper_case(self):
        p = profile_from_record("u2", {"GELAR_DEPAN": "Drs.", "NAMA": "Budi", "JABATAN_STRUKTURAL": "Wakasek"})
        assert p.display_name == "Drs. Budi"
        assert p.job_title == "Wakasek"

    def test_nested_profile(self):
        p = profile_from_record("u3", {"email": "x@y", "profile": {"nama": "Rina", "gelar_belakang": "S.Pd."}})
        assert p.display_name == "Rina S.Pd."

    def test_defaults(self):
        p = profile_from_record("u4", None)
        assert p.uid == "u4"
        assert p.job_title == "Staff"
        assert p.display_name == ""

    def test_display_name_collapses_whitespace(self):
        p = Profile(uid="u5", prefix_title="  ", name="  Siti   Aminah ", suffix_title="")
        assert p.display_name == "Siti Aminah"


class TestLetterTypeFromRecord:
    def test_plain_fields(self):
        lt = letter_type_from_record({"code": "SK", "format_code": "SK", "need_activity_code": "TRUE"})
        assert (lt.code, lt.format_code, lt.requires_activity_code) == ("SK", "SK", True)

    def test_sheet_headers(self):
        lt = letter_type_from_record({
            "Kode Tipe (ID Database)": "UND",
            "Format Kode Penomoran": "UND",
            "Keterangan": "Undangan KEGIATAN sekolah",
        })
        assert lt.code == "UND"
        assert lt.requires_activity_code is True

    def test_flag_false(self):
        lt = letter_type_from_record({"id": "ST", "format": "ST", "need_activity": "no"})
        assert lt.format_code == "ST"
        assert lt.requires_activity_code is False
