"""
Reports routes for LuckyVault IMS
Purchasing and expense totals for a day, range or week, plus a sales summary.
"""

import csv
import io
import logging
import pytz
from datetime import datetime
from flask import Blueprint, render_template, request, jsonify, Response, current_app
from routes.auth import page_access_required, get_current_user
from calculations import report_date_range, summarize_acquisitions, localize_timestamp
from database import get_acquisitions, get_expenses, get_sales_summary

logger = logging.getLogger(__name__)

reports_bp = Blueprint('reports', __name__)


def build_report(start_date, end_date, country=None):
    """
    Purchasing report for a date range.

    Countries are listed from every acquisition in range; the country filter
    then narrows the acquisitions the totals and groupings are built from.
    """
    acquisitions = get_acquisitions(date_from=start_date, date_to=end_date)
    expenses = get_expenses(start_date, end_date)

    countries = sorted({a['source_country'] for a in acquisitions if a.get('source_country')})
    if country:
        acquisitions = [a for a in acquisitions if a.get('source_country') == country]

    report = summarize_acquisitions(acquisitions, expenses)
    report['countries'] = countries
    report['country'] = country or None
    report['start_date'] = start_date
    report['end_date'] = end_date
    report['acquisitions'] = acquisitions
    report['expenses'] = expenses
    report['sales'] = get_sales_summary(start_date, end_date)
    return report


def _selected_range(args):
    return report_date_range(args.get('mode', 'single'), args.get('date'),
                             args.get('start_date'), args.get('end_date'))


@reports_bp.route('/reports')
@page_access_required('reports')
def reports_page():
    """Display the reports page"""
    return render_template('reports.html',
                           user=get_current_user(),
                           today=datetime.now().strftime('%Y-%m-%d'))


@reports_bp.route('/api/reports', methods=['GET'])
@page_access_required('reports')
def report_data():
    """Build a report for the selected date mode"""
    try:
        date_range = _selected_range(request.args)
        if not date_range:
            return jsonify({'error': 'Please select a date or date range'}), 400

        report = build_report(date_range[0], date_range[1], request.args.get('country'))
        return jsonify({'success': True, 'report': report})
    except ValueError:
        return jsonify({'error': 'Invalid date'}), 400
    except Exception as e:
        logger.exception("Failed to build report")
        return jsonify({'error': str(e)}), 500


@reports_bp.route('/api/reports/export', methods=['GET'])
@page_access_required('reports')
def export_report():
    """Download the selected report as CSV"""
    try:
        date_range = _selected_range(request.args)
        if not date_range:
            return jsonify({'error': 'Please select a date or date range'}), 400

        report = build_report(date_range[0], date_range[1], request.args.get('country'))
        generated_date, generated_time = localize_timestamp(
            datetime.now(pytz.utc).strftime('%Y-%m-%d %H:%M:%S'), current_app.config['TIMEZONE']
        )

        output = io.StringIO()
        writer = csv.writer(output)

        writer.writerow(['LuckyVault Purchasing Report'])
        writer.writerow(['Period', report['start_date'], report['end_date']])
        if report['country']:
            writer.writerow(['Country', report['country']])
        writer.writerow(['Generated', f'{generated_date} {generated_time}'])
        writer.writerow([])

        writer.writerow(['Summary'])
        writer.writerow(['Acquisitions (USD)', f"{report['total_acquisitions_cost']:.2f}"])
        writer.writerow(['Expenses (USD)', f"{report['total_expenses_cost']:.2f}"])
        writer.writerow(['Grand Total (USD)', f"{report['grand_total']:.2f}"])
        writer.writerow(['Items Purchased', report['total_items']])
        writer.writerow([])

        for title, key, count_label in (('By Acquirer', 'by_acquirer', 'Units'),
                                        ('By Brand', 'by_brand', 'Units'),
                                        ('By Country', 'by_country', 'Units'),
                                        ('Expenses By Category', 'expenses_by_category', 'Entries')):
            writer.writerow([title, count_label, 'Total (USD)'])
            for name, group in report[key].items():
                writer.writerow([name, group['count'], f"{group['total']:.2f}"])
            writer.writerow([])

        writer.writerow(['Acquisitions'])
        writer.writerow(['Date', 'Acquirer', 'Country', 'Vendor', 'Product', 'Quantity', 'Cost', 'Currency',
                         'Cost (USD)', 'Status'])
        for a in report['acquisitions']:
            writer.writerow([a['date_purchased'], a['acquirer_name'], a['source_country'], a['vendor_name'] or '',
                             a['product_name'], a['quantity_purchased'], a['cost'], a['currency'],
                             f"{a['cost_usd']:.2f}", a['status']])
        writer.writerow([])

        writer.writerow(['Expenses'])
        writer.writerow(['Date', 'Category', 'Description', 'Amount', 'Currency', 'Amount (USD)'])
        for e in report['expenses']:
            writer.writerow([e['date'], e['category'], e['description'], e['amount'], e['currency'],
                             f"{e['amount_usd']:.2f}"])

        csv_content = output.getvalue()
        output.close()

        return Response(
            csv_content,
            mimetype='text/csv',
            headers={
                'Content-Disposition': f'attachment; filename=luckyvault_report_{datetime.now().strftime("%Y%m%d_%H%M%S")}.csv'
            }
        )
    except ValueError:
        return jsonify({'error': 'Invalid date'}), 400
    except Exception as e:
        logger.exception("Failed to export report")
        return jsonify({'error': str(e)}), 500
