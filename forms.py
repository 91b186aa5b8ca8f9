from flask_wtf import FlaskForm
from flask_wtf.file import FileField, FileRequired, FileAllowed
from wtforms import StringField, PasswordField
from wtforms.validators import DataRequired, Length, Optional


class AdminLoginForm(FlaskForm):
    password = PasswordField('Admin Password', validators=[DataRequired()])


class ProgressUploadForm(FlaskForm):
    """Multipart upload of an ALEKS progress export for one period/section."""
    file = FileField('Progress Export (XLSX or CSV)', validators=[
        FileRequired(message='No file uploaded'),
        FileAllowed(['xlsx', 'csv', 'txt'], 'Upload the ALEKS Time and Topic export (.xlsx or .csv)'),
    ])
    examPeriod = StringField('Exam Period', validators=[DataRequired(message='Exam period is required'), Length(max=64)])
    sectionId = StringField('Section', validators=[Optional(), Length(max=64)])
