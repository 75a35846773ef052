import django.db.models.deletion
from django.conf import settings
from django.db import migrations, models


class Migration(migrations.Migration):

    initial = True

    dependencies = [
        migrations.swappable_dependency(settings.AUTH_USER_MODEL),
    ]

    operations = [
        migrations.CreateModel(
            name='DigitalCertificateModel',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('name', models.CharField(max_length=256, verbose_name='Name')),
                ('serial_number', models.CharField(max_length=256, verbose_name='Serial Number')),
                ('issuer', models.CharField(max_length=256, verbose_name='Issuer')),
                ('fingerprint', models.CharField(editable=False, max_length=64, unique=True, verbose_name='Fingerprint (SHA256)')),
                ('signature_algorithm', models.CharField(blank=True, max_length=256, verbose_name='Signature Algorithm')),
                ('key_size', models.PositiveIntegerField(blank=True, null=True, verbose_name='Key Size')),
                ('issued_at', models.DateTimeField(verbose_name='Not Valid Before')),
                ('expires_at', models.DateTimeField(db_index=True, verbose_name='Not Valid After')),
                ('blob_locator', models.CharField(editable=False, max_length=1024, verbose_name='Blob Locator')),
                ('encrypted_password', models.TextField(editable=False, verbose_name='Encrypted Password')),
                ('password_hash', models.CharField(editable=False, max_length=256, verbose_name='Password Hash')),
                ('is_active', models.BooleanField(default=False, verbose_name='Active')),
                ('is_validated', models.BooleanField(default=False, verbose_name='Validated')),
                ('storage_backend', models.CharField(choices=[('filesystem', 'Filesystem'), ('object', 'Object Storage')], default='filesystem', max_length=16, verbose_name='Storage Backend')),
                ('deactivated_at', models.DateTimeField(blank=True, null=True, verbose_name='Deactivated At')),
                ('deactivation_reason', models.CharField(blank=True, choices=[('superseded', 'Superseded by a new certificate'), ('deactivated', 'Deactivated by the owner'), ('removed', 'Removed by the owner'), ('expired', 'Expired'), ('orphaned', 'Certificate container no longer found in storage')], default='', max_length=16, verbose_name='Deactivation Reason')),
                ('removed_at', models.DateTimeField(blank=True, null=True, verbose_name='Removed At')),
                ('total_signatures', models.PositiveIntegerField(default=0, verbose_name='Total Signatures')),
                ('last_used_at', models.DateTimeField(blank=True, null=True, verbose_name='Last Used At')),
                ('attempts', models.JSONField(blank=True, default=list, verbose_name='Usage Attempts')),
                ('creation_ip', models.GenericIPAddressField(blank=True, null=True, verbose_name='Creation IP')),
                ('creation_user_agent', models.CharField(blank=True, max_length=512, verbose_name='Creation User Agent')),
                ('created_at', models.DateTimeField(auto_now_add=True, verbose_name='Created At')),
                ('updated_at', models.DateTimeField(auto_now=True, verbose_name='Updated At')),
                ('created_by', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name='+', to=settings.AUTH_USER_MODEL, verbose_name='Created By')),
                ('owner', models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name='digital_certificates', to=settings.AUTH_USER_MODEL, verbose_name='Owner')),
            ],
            options={
                'verbose_name': 'Digital Certificate',
                'verbose_name_plural': 'Digital Certificates',
                'ordering': ('-created_at', '-id'),
                'abstract': False,
                'indexes': [models.Index(fields=['owner', 'is_active'], name='certificate_owner_active_idx')],
                'constraints': [models.UniqueConstraint(condition=models.Q(('is_active', True)), fields=('owner',), name='unique_active_certificate_per_owner')],
            },
        ),
    ]
