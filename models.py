"""
models.py - Database Models for the grading workflow
Schools, staff accounts, class rosters, subjects and the two grade tables:
numeric grades (standard and IGCSE) and CBC strand assessments.
"""

from extensions import db
from flask_login import UserMixin
from datetime import datetime


GRADE_STATUSES = ('draft', 'submitted', 'approved', 'rejected', 'released')
STATUS_CHECK = 'status IN (' + ', '.join(f"'{s}'" for s in GRADE_STATUSES) + ')'


class School(db.Model):
    """
    School - tenant boundary; every grading query is scoped to one school
    """
    __tablename__ = 'school'

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(200), nullable=False)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)

    classes = db.relationship('SchoolClass', backref='school', lazy='dynamic')

    def __repr__(self):
        return f'<School {self.name}>'


class User(UserMixin, db.Model):
    """
    Staff account - the logged-in user is the actor of every grading call
    """
    __tablename__ = 'user'

    id = db.Column(db.Integer, primary_key=True)
    email = db.Column(db.String(120), unique=True, nullable=False, index=True)
    password = db.Column(db.String(255), nullable=False)
    # 'teacher', 'principal', 'edufam_admin', 'parent', 'finance_officer', 'hr', 'school_director'
    role = db.Column(db.String(30), nullable=False)
    full_name = db.Column(db.String(200), nullable=True)
    school_id = db.Column(db.Integer, db.ForeignKey('school.id'), nullable=True, index=True)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)

    school = db.relationship('School')

    def __repr__(self):
        return f'<User {self.email} ({self.role})>'


class SchoolClass(db.Model):
    """
    Class - a group of students graded under exactly one curriculum
    curriculum_type is free text here; the classifier validates it.
    """
    __tablename__ = 'school_class'

    id = db.Column(db.Integer, primary_key=True)
    school_id = db.Column(db.Integer, db.ForeignKey('school.id'), nullable=False, index=True)
    name = db.Column(db.String(100), nullable=False)
    curriculum_type = db.Column(db.String(20), nullable=True)  # 'cbc', 'igcse', 'standard'
    created_at = db.Column(db.DateTime, default=datetime.utcnow)

    students = db.relationship('Student', backref='school_class', lazy='dynamic')
    subjects = db.relationship('Subject', backref='school_class', lazy='dynamic')

    def __repr__(self):
        return f'<SchoolClass {self.name} ({self.curriculum_type})>'


class AcademicTerm(db.Model):
    __tablename__ = 'academic_term'

    id = db.Column(db.Integer, primary_key=True)
    school_id = db.Column(db.Integer, db.ForeignKey('school.id'), nullable=False, index=True)
    name = db.Column(db.String(50), nullable=False)  # "Term 1"
    academic_year = db.Column(db.String(20), nullable=False)
    start_date = db.Column(db.Date, nullable=True)
    end_date = db.Column(db.Date, nullable=True)

    def __repr__(self):
        return f'<AcademicTerm {self.name} {self.academic_year}>'


class Student(db.Model):
    """
    Student - read-only from the grading workflow's point of view
    """
    __tablename__ = 'student'

    id = db.Column(db.Integer, primary_key=True)
    school_id = db.Column(db.Integer, db.ForeignKey('school.id'), nullable=False, index=True)
    class_id = db.Column(db.Integer, db.ForeignKey('school_class.id'), nullable=False, index=True)
    name = db.Column(db.String(200), nullable=False)
    admission_number = db.Column(db.String(50), nullable=True)
    roll_number = db.Column(db.String(50), nullable=True)
    is_active = db.Column(db.Boolean, default=True, nullable=False)

    def __repr__(self):
        return f'<Student {self.admission_number} - {self.name}>'

    def to_dict(self):
        return {
            'id': self.id,
            'name': self.name,
            'admission_number': self.admission_number,
            'roll_number': self.roll_number,
        }


class Subject(db.Model):
    __tablename__ = 'subject'

    id = db.Column(db.Integer, primary_key=True)
    school_id = db.Column(db.Integer, db.ForeignKey('school.id'), nullable=False, index=True)
    class_id = db.Column(db.Integer, db.ForeignKey('school_class.id'), nullable=True, index=True)
    name = db.Column(db.String(200), nullable=False)
    code = db.Column(db.String(20), nullable=True)
    is_active = db.Column(db.Boolean, default=True, nullable=False)

    def __repr__(self):
        return f'<Subject {self.code} - {self.name}>'

    def to_dict(self):
        return {'id': self.id, 'name': self.name, 'code': self.code}


class SubjectTeacherAssignment(db.Model):
    """
    Links a teacher to a subject they teach in a given class.
    Teachers only see (and grade) subjects they hold an active assignment for.
    """
    __tablename__ = 'subject_teacher_assignment'

    id = db.Column(db.Integer, primary_key=True)
    school_id = db.Column(db.Integer, db.ForeignKey('school.id'), nullable=False, index=True)
    teacher_id = db.Column(db.Integer, db.ForeignKey('user.id'), nullable=False, index=True)
    subject_id = db.Column(db.Integer, db.ForeignKey('subject.id'), nullable=False)
    class_id = db.Column(db.Integer, db.ForeignKey('school_class.id'), nullable=False, index=True)
    is_active = db.Column(db.Boolean, default=True, nullable=False)

    subject = db.relationship('Subject')
    teacher = db.relationship('User')

    def __repr__(self):
        return f'<SubjectTeacherAssignment T:{self.teacher_id} S:{self.subject_id} C:{self.class_id}>'


class Grade(db.Model):
    """
    Grade - one numeric result per (student, subject, term, exam type, author)
    Used by the standard and IGCSE curricula; the IGCSE variant also fills
    coursework_score and exam_score.
    """
    __tablename__ = 'grade'
    __table_args__ = (
        db.UniqueConstraint(
            'school_id', 'student_id', 'subject_id', 'class_id', 'term', 'exam_type', 'submitted_by',
            name='uq_grade_identity',
        ),
        db.CheckConstraint(STATUS_CHECK, name='ck_grade_status'),
    )

    id = db.Column(db.Integer, primary_key=True)
    school_id = db.Column(db.Integer, db.ForeignKey('school.id'), nullable=False, index=True)
    student_id = db.Column(db.Integer, db.ForeignKey('student.id'), nullable=False, index=True)
    subject_id = db.Column(db.Integer, db.ForeignKey('subject.id'), nullable=False)
    class_id = db.Column(db.Integer, db.ForeignKey('school_class.id'), nullable=False, index=True)
    term = db.Column(db.String(50), nullable=False)
    exam_type = db.Column(db.String(50), nullable=False)

    score = db.Column(db.Float, nullable=True)
    max_score = db.Column(db.Float, nullable=True)
    percentage = db.Column(db.Float, nullable=True)
    letter_grade = db.Column(db.String(5), nullable=True)

    # IGCSE components
    coursework_score = db.Column(db.Float, nullable=True)
    exam_score = db.Column(db.Float, nullable=True)

    curriculum_type = db.Column(db.String(20), nullable=True)
    status = db.Column(db.String(20), nullable=False, default='draft')
    submitted_by = db.Column(db.Integer, db.ForeignKey('user.id'), nullable=False)
    submitted_at = db.Column(db.DateTime, nullable=True)
    comments = db.Column(db.Text, nullable=True)

    created_at = db.Column(db.DateTime, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    def __repr__(self):
        return f'<Grade Student:{self.student_id} Subject:{self.subject_id} {self.score} ({self.status})>'


class StrandAssessment(db.Model):
    """
    StrandAssessment - CBC performance level for one strand of a subject
    A student's CBC grade for a subject is the set of its strand rows.
    """
    __tablename__ = 'strand_assessment'
    __table_args__ = (
        db.UniqueConstraint(
            'school_id', 'student_id', 'subject_id', 'class_id', 'term', 'assessment_type',
            'teacher_id', 'strand_name',
            name='uq_strand_assessment_identity',
        ),
        db.CheckConstraint(STATUS_CHECK, name='ck_strand_assessment_status'),
    )

    id = db.Column(db.Integer, primary_key=True)
    school_id = db.Column(db.Integer, db.ForeignKey('school.id'), nullable=False, index=True)
    student_id = db.Column(db.Integer, db.ForeignKey('student.id'), nullable=False, index=True)
    subject_id = db.Column(db.Integer, db.ForeignKey('subject.id'), nullable=False)
    class_id = db.Column(db.Integer, db.ForeignKey('school_class.id'), nullable=False, index=True)
    teacher_id = db.Column(db.Integer, db.ForeignKey('user.id'), nullable=False)

    strand_name = db.Column(db.String(200), nullable=False)
    performance_level = db.Column(db.String(2), nullable=False)  # EM, AP, PR, EX
    assessment_type = db.Column(db.String(50), nullable=False)  # exam type, lower-cased
    term = db.Column(db.String(50), nullable=False)
    teacher_remarks = db.Column(db.Text, nullable=True)
    assessment_date = db.Column(db.Date, nullable=True)

    status = db.Column(db.String(20), nullable=False, default='draft')
    submitted_at = db.Column(db.DateTime, nullable=True)

    created_at = db.Column(db.DateTime, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    def __repr__(self):
        return f'<StrandAssessment Student:{self.student_id} {self.strand_name}={self.performance_level}>'


class SystemSettings(db.Model):
    """
    System-wide settings stored in database
    Allows an administrator to override auto-calculated values (current term/year)
    """
    __tablename__ = 'system_settings'

    id = db.Column(db.Integer, primary_key=True)
    setting_key = db.Column(db.String(100), unique=True, nullable=False, index=True)
    setting_value = db.Column(db.String(200), nullable=False)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)
    updated_by = db.Column(db.String(100), nullable=True)

    def __repr__(self):
        return f'<SystemSettings {self.setting_key}={self.setting_value}>'

    @staticmethod
    def get_setting(key, default=None):
        setting = SystemSettings.query.filter_by(setting_key=key).first()
        return setting.setting_value if setting else default

    @staticmethod
    def set_setting(key, value, updated_by=None):
        """
        Set a setting value in database
        Creates new setting if doesn't exist
        """
        setting = SystemSettings.query.filter_by(setting_key=key).first()
        if setting:
            setting.setting_value = value
            setting.updated_at = datetime.utcnow()
            setting.updated_by = updated_by
        else:
            setting = SystemSettings(
                setting_key=key,
                setting_value=value,
                updated_by=updated_by
            )
            db.session.add(setting)
        db.session.commit()
        return setting

    @staticmethod
    def delete_setting(key):
        """Delete a setting (revert to auto-calculation)"""
        setting = SystemSettings.query.filter_by(setting_key=key).first()
        if setting:
            db.session.delete(setting)
            db.session.commit()
            return True
        return False
